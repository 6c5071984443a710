"""Task delay classification.

Every view that shows whether a task is late (kanban cards, task detail,
team member task list, user task table) goes through these functions.
"""
from datetime import date
from typing import Iterable, List, Optional

from models import Task

DELAYED_PRIORITY = 0
STATUS_PRIORITY = {
    "In Progress": 1,
    "Todo": 2,
    "Review": 3,
    "Done": 4,
}


def parse_local_date(value: Optional[str]) -> Optional[date]:
    """Read the calendar date of ``value`` without any timezone shift."""
    if not value:
        return None
    head = str(value).strip().split("T")[0].split(" ")[0]
    try:
        return date.fromisoformat(head)
    except ValueError:
        return None


def days_overdue(task: Task, today: Optional[date] = None) -> int:
    if task.status == "Done":
        return 0
    deadline = parse_local_date(task.estimated_delivery)
    if deadline is None:
        return 0
    today = today or date.today()
    # both sides are midnight dates, so the day difference is already the ceiling
    diff = (today - deadline).days
    return diff if diff > 0 else 0


def is_delayed(task: Task, today: Optional[date] = None) -> bool:
    return days_overdue(task, today) > 0


def sort_priority(task: Task, today: Optional[date] = None) -> int:
    if is_delayed(task, today):
        return DELAYED_PRIORITY
    return STATUS_PRIORITY.get(task.status, len(STATUS_PRIORITY))


def with_delay(task: Task, today: Optional[date] = None) -> Task:
    return task.model_copy(update={"days_overdue": days_overdue(task, today)})


def sort_tasks(tasks: Iterable[Task], today: Optional[date] = None) -> List[Task]:
    """Delayed first, then In Progress, Todo, Review, Done. Stable within a group."""
    today = today or date.today()
    return sorted((with_delay(t, today) for t in tasks), key=lambda t: sort_priority(t, today))
