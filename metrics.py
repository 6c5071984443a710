"""Dashboard aggregations over already-loaded collections.

All functions are pure reductions: they take lists of models and return
numbers, dicts or response models. Percentages are on a 0-100 scale.
"""
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

from delays import is_delayed, parse_local_date
from models import (Client, PortfolioSummary, Project, ProjectMetrics, ProjectPerformance,
                    Task, TimesheetEntry, User)

CRITICAL_BURN_RATE = 90
CRITICAL_MARGIN = 15
DELAY_TOLERANCE = 5

STATUS_DONE = "CONCLUÍDO"
STATUS_RUNNING = "EM ANDAMENTO"
STATUS_LATE = "ATRASADO"
STATUS_STARTED = "INICIADO"
STATUS_NOT_STARTED = "NÃO INICIADO"


def hours_by(entries: Iterable[TimesheetEntry], field: str) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for entry in entries:
        totals[getattr(entry, field)] += entry.total_hours or 0
    return dict(totals)


def hours_per_client(entries: Iterable[TimesheetEntry]) -> Dict[str, float]:
    return hours_by(entries, "client_id")


def hours_per_project(entries: Iterable[TimesheetEntry]) -> Dict[str, float]:
    return hours_by(entries, "project_id")


def hours_per_user(entries: Iterable[TimesheetEntry]) -> Dict[str, float]:
    return hours_by(entries, "user_id")


def mean_progress(tasks: List[Task]) -> float:
    if not tasks:
        return 0.0
    return sum(t.progress for t in tasks) / len(tasks)


def mean_progress_by_project(tasks: Iterable[Task]) -> Dict[str, float]:
    grouped: Dict[str, List[Task]] = defaultdict(list)
    for task in tasks:
        grouped[task.project_id].append(task)
    return {project_id: mean_progress(items) for project_id, items in grouped.items()}


def weighted_progress(tasks: List[Task]) -> float:
    """Progress weighted by estimated hours; plain mean when no task has an estimate."""
    total_estimated = sum(t.estimated_hours or 0 for t in tasks)
    if total_estimated > 0:
        return sum(t.progress * (t.estimated_hours or 0) for t in tasks) / total_estimated
    return mean_progress(tasks)


def realized_cost(entries: Iterable[TimesheetEntry], users: Mapping[str, User]) -> float:
    cost = 0.0
    for entry in entries:
        user = users.get(entry.user_id)
        cost += (entry.total_hours or 0) * (user.hourly_cost if user else 0)
    return cost


def margin(sold_value: float, cost: float) -> float:
    return sold_value - cost


def margin_percent(sold_value: float, cost: float) -> float:
    if sold_value <= 0:
        return 0.0
    return (sold_value - cost) / sold_value * 100


def planned_progress(project: Project, today: Optional[date] = None) -> float:
    """Share of the planned date range already elapsed."""
    today = today or date.today()
    start = parse_local_date(project.start_date)
    end = parse_local_date(project.estimated_delivery)
    if not start or not end or start >= end:
        return 0.0
    if today > end:
        return 100.0
    if today > start:
        return (today - start).days / (end - start).days * 100
    return 0.0


def project_timeline_status(project: Project, today: Optional[date] = None) -> str:
    if project.end_date_real and project.end_date_real.strip():
        return STATUS_DONE
    if project.start_date_real and project.start_date_real.strip():
        return STATUS_RUNNING
    today = today or date.today()
    end = parse_local_date(project.estimated_delivery)
    if end and today > end:
        return STATUS_LATE
    start = parse_local_date(project.start_date)
    if start and today >= start:
        return STATUS_STARTED
    return STATUS_NOT_STARTED


def enrich_projects_with_task_dates(projects: Iterable[Project], tasks: Iterable[Task]) -> List[Project]:
    """Move a project's start date back to its earliest task start."""
    starts: Dict[str, str] = {}
    for task in tasks:
        start = task.actual_start or task.scheduled_start
        if not start:
            continue
        current = starts.get(task.project_id)
        if current is None or start < current:
            starts[task.project_id] = start

    enriched = []
    for project in projects:
        earliest = starts.get(project.id)
        if earliest and (not project.start_date or earliest < project.start_date):
            project = project.model_copy(update={"start_date": earliest})
        enriched.append(project)
    return enriched


def project_metrics(project: Project, clients: Mapping[str, Client], tasks: Iterable[Task],
                    entries: Iterable[TimesheetEntry], users: Mapping[str, User],
                    today: Optional[date] = None) -> ProjectMetrics:
    today = today or date.today()
    p_tasks = [t for t in tasks if t.project_id == project.id]
    p_entries = [e for e in entries if e.project_id == project.id]

    hours_consumed = sum(e.total_hours or 0 for e in p_entries)
    hours_sold = project.sold_hours or 0
    burn_rate = hours_consumed / hours_sold * 100 if hours_sold > 0 else 0.0

    cost = realized_cost(p_entries, users)
    revenue = project.sold_value or 0
    margin_pct = margin_percent(revenue, cost)

    completed = len([t for t in p_tasks if t.status == "Done"])
    progress = completed / len(p_tasks) * 100 if p_tasks else 0.0
    overdue = len([t for t in p_tasks if is_delayed(t, today)])

    planned = planned_progress(project, today)
    delayed = progress < planned - DELAY_TOLERANCE
    critical = overdue > 0 or burn_rate > CRITICAL_BURN_RATE or margin_pct < CRITICAL_MARGIN or delayed

    client = clients.get(project.client_id)
    return ProjectMetrics(
        id=project.id,
        project_name=project.name,
        client_name=client.name if client else "N/A",
        status=project.status or "Ativo",
        progress=progress,
        hours_sold=hours_sold,
        hours_consumed=hours_consumed,
        hours_remaining=hours_sold - hours_consumed,
        burn_rate=burn_rate,
        revenue=revenue,
        cost=cost,
        margin=margin_pct,
        profit=margin(revenue, cost),
        total_tasks=len(p_tasks),
        completed_tasks=completed,
        overdue_tasks=overdue,
        planned_progress=planned,
        is_delayed=delayed,
        is_critical=critical,
    )


def portfolio_metrics(projects: Iterable[Project], clients: Mapping[str, Client], tasks: List[Task],
                      entries: List[TimesheetEntry], users: Mapping[str, User],
                      today: Optional[date] = None) -> List[ProjectMetrics]:
    return [project_metrics(p, clients, tasks, entries, users, today) for p in projects if p.active]


def filter_and_sort(metrics: List[ProjectMetrics], status_filter: str = "all",
                    sort_key: str = "margin", direction: str = "desc") -> List[ProjectMetrics]:
    if status_filter == "active":
        metrics = [m for m in metrics if m.progress < 100]
    elif status_filter == "critical":
        metrics = [m for m in metrics if m.is_critical]

    if sort_key not in ProjectMetrics.model_fields:
        raise ValueError(f"Unknown sort key: {sort_key}")

    def key(m):
        value = getattr(m, sort_key)
        return value.lower() if isinstance(value, str) else value

    return sorted(metrics, key=key, reverse=direction == "desc")


def portfolio_summary(metrics: List[ProjectMetrics]) -> PortfolioSummary:
    total_revenue = sum(m.revenue for m in metrics)
    total_cost = sum(m.cost for m in metrics)
    return PortfolioSummary(
        total_revenue=total_revenue,
        total_cost=total_cost,
        total_profit=sum(m.profit for m in metrics),
        margin_percent=margin_percent(total_revenue, total_cost),
        average_margin=sum(m.margin for m in metrics) / len(metrics) if metrics else 0.0,
        total_projects=len(metrics),
        critical_projects=len([m for m in metrics if m.is_critical]),
        total_hours_sold=sum(m.hours_sold for m in metrics),
        total_hours_consumed=sum(m.hours_consumed for m in metrics),
    )


def project_performance(project: Project, tasks: Iterable[Task], entries: Iterable[TimesheetEntry],
                        users: Mapping[str, User], today: Optional[date] = None) -> ProjectPerformance:
    p_tasks = [t for t in tasks if t.project_id == project.id]
    p_entries = [e for e in entries if e.project_id == project.id]
    return ProjectPerformance(
        project_id=project.id,
        committed_cost=realized_cost(p_entries, users),
        weighted_progress=weighted_progress(p_tasks),
        mean_progress=mean_progress(p_tasks),
        total_estimated_hours=sum(t.estimated_hours or 0 for t in p_tasks),
        planned_progress=planned_progress(project, today),
        timeline_status=project_timeline_status(project, today),
    )
