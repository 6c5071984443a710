"""Team capacity and availability.

Months are given as ``YYYY-MM`` strings. Hours are rounded to whole numbers
the way the admin dashboard shows them.
"""
import calendar
import math
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from delays import parse_local_date
from models import Availability, Project, ProjectMember, Task, TimesheetEntry, User

DEFAULT_DAILY_HOURS = 8
DEFAULT_ALLOCATION = 100
# Memberships of projects without sold hours count as a tenth of the stated share.
FALLBACK_ALLOCATION_DIVISOR = 1000


def month_bounds(month: str) -> Tuple[date, date]:
    year, month_number = (int(part) for part in month.split("-")[:2])
    last_day = calendar.monthrange(year, month_number)[1]
    return date(year, month_number, 1), date(year, month_number, last_day)


def get_working_days_in_month(month: str) -> int:
    first, last = month_bounds(month)
    return sum(1 for offset in range((last - first).days + 1)
               if (first + timedelta(days=offset)).weekday() < 5)


def _intersects(start: date, end: Optional[date], month_start: date, month_end: date) -> bool:
    return start <= month_end and (end is None or end >= month_start)


def get_monthly_allocated_hours(user_id: str, month: str, tasks: Iterable[Task],
                                today: Optional[date] = None) -> int:
    """Estimated task hours of ``user_id`` that fall inside ``month``.

    Each open task spreads its estimate evenly over its days and over the owner
    plus collaborators.
    """
    today = today or date.today()
    month_start, month_end = month_bounds(month)
    total = 0.0

    for task in tasks:
        if task.status == "Done" or not task.estimated_hours:
            continue
        if task.developer_id != user_id and user_id not in task.collaborator_ids:
            continue

        start = parse_local_date(task.scheduled_start) or parse_local_date(task.actual_start) or today
        end = max(start, parse_local_date(task.estimated_delivery) or start)
        task_days = max(1, (end - start).days + 1)

        overlap_start = max(start, month_start)
        overlap_end = min(end, month_end)
        if overlap_start > overlap_end:
            continue

        overlap_days = max(1, (overlap_end - overlap_start).days + 1)
        people = 1 + len(task.collaborator_ids)
        total += overlap_days / task_days * (task.estimated_hours / people)

    return round(total)


def _project_months(start: date, end: date) -> int:
    month_diff = (end.year - start.year) * 12 + (end.month - start.month)
    return max(1, month_diff + (0 if end.day < start.day else 1))


def get_user_monthly_availability(user: User, month: str, projects: List[Project],
                                  members: Iterable[ProjectMember],
                                  entries: Iterable[TimesheetEntry] = (), tasks: Iterable[Task] = (),
                                  today: Optional[date] = None) -> Availability:
    """Capacity of ``user`` in ``month`` against project allocations.

    ``allocated`` comes from project memberships, ``task_allocated`` from the
    estimates of the user's open tasks.
    """
    month_start, month_end = month_bounds(month)
    capacity = (user.daily_available_hours or DEFAULT_DAILY_HOURS) * get_working_days_in_month(month)
    projects_by_id = {p.id: p for p in projects}

    allocated = 0.0
    for member in members:
        if member.user_id != user.id:
            continue
        project = projects_by_id.get(member.project_id)
        if project is None:
            continue

        project_start = parse_local_date(project.start_date)
        project_end = parse_local_date(project.estimated_delivery)
        member_start = parse_local_date(member.start_date) or project_start or date.min
        member_end = parse_local_date(member.end_date)

        if project_start and project_end:
            project_active = _intersects(project_start, project_end, month_start, month_end)
        else:
            # projects without dates run continuously while active
            project_active = project.active
        if not (project_active and _intersects(member_start, member_end, month_start, month_end)):
            continue

        added = 0.0
        if project_start and project_end and project_end > project_start and project.sold_hours > 0:
            share = (member.allocation_percentage or DEFAULT_ALLOCATION) / 100
            added = project.sold_hours / _project_months(project_start, project_end) * share
        if added == 0 and member.allocation_percentage and member.allocation_percentage > 0:
            added = capacity * (member.allocation_percentage / FALLBACK_ALLOCATION_DIVISOR)
        allocated += added

    worked = sum(e.total_hours or 0 for e in entries
                 if e.user_id == user.id and month_start.isoformat() <= e.date[:10] <= month_end.isoformat())

    return Availability(
        user_id=user.id,
        month=month,
        capacity=round(capacity),
        allocated=round(allocated),
        task_allocated=get_monthly_allocated_hours(user.id, month, tasks, today),
        available=round(max(0, capacity - allocated)),
        worked=round(worked, 2),
    )


def calculate_project_deadline(start_date: Optional[str], sold_hours: float, team: List[User]) -> str:
    """Estimated delivery date: the sold hours burned by the team's daily hours, working days only."""
    start = parse_local_date(start_date)
    if start is None or sold_hours <= 0 or not team:
        return ""
    daily_capacity = sum(u.daily_available_hours or DEFAULT_DAILY_HOURS for u in team)
    if daily_capacity <= 0:
        return ""

    days_needed = math.ceil(sold_hours / daily_capacity)
    current = start
    added = 0
    while added < days_needed:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current.isoformat()
