"""In-memory copy of the collections that the dashboards read from.

The copy is loaded once from the tables and then kept current by the
Supabase realtime change feed (or by the API's own writes). Events are
applied in arrival order; the last one for an id wins. Task collaborator
links and project memberships are followed too, since the per-user views
depend on them.
"""
from typing import Any, Callable, Dict, List, Mapping, Tuple

from loggers import setup_supabase_logger
from models import Client, Project, ProjectMember, Task, TimesheetEntry, User
import repositories
from normalizers import (as_id, map_db_client, map_db_member, map_db_project, map_db_task,
                         map_db_timesheet, map_db_user)

logger = setup_supabase_logger()

EVENTS = ("INSERT", "UPDATE", "DELETE")

FALLBACK_USERS = [
    User(id="u1", name="Admin User", email="admin@nic.com", role="admin"),
    User(id="u2", name="João S.", email="joao@nic.com", role="developer"),
]


class Snapshot:
    def __init__(self, clients=(), projects=(), tasks=(), users=(), timesheets=(), members=()):
        self.clients: Dict[str, Client] = {c.id: c for c in clients}
        self.projects: Dict[str, Project] = {p.id: p for p in projects}
        self.tasks: Dict[str, Task] = {t.id: t for t in tasks}
        self.users: Dict[str, User] = {u.id: u for u in users}
        self.timesheets: Dict[str, TimesheetEntry] = {e.id: e for e in timesheets}
        self.members: List[ProjectMember] = list(members)

    @classmethod
    def load(cls, db) -> "Snapshot":
        users = repositories.fetch_users(db)
        if not users:
            logger.warning("No users returned from the users table, using fallback users")
            users = list(FALLBACK_USERS)
        users_by_id = {u.id: u for u in users}
        return cls(
            clients=repositories.fetch_clients(db),
            projects=repositories.fetch_projects(db),
            tasks=repositories.fetch_tasks(db, users_by_id=users_by_id),
            users=users,
            timesheets=repositories.fetch_timesheets(db),
            members=repositories.fetch_project_members(db),
        )

    def _map_task(self, row: Mapping[str, Any]) -> Task:
        # task rows carry no collaborators, those come from the link table
        existing = self.tasks.get(as_id(row.get("id_tarefa_novo")))
        return map_db_task(row, self.users, collaborator_ids=existing.collaborator_ids if existing else None)

    def _collections(self) -> Dict[str, Tuple[dict, Callable]]:
        return {
            repositories.CLIENTS: (self.clients, map_db_client),
            repositories.PROJECTS: (self.projects, map_db_project),
            repositories.TASKS: (self.tasks, self._map_task),
            repositories.USERS: (self.users, map_db_user),
            repositories.TIMESHEETS: (self.timesheets, map_db_timesheet),
        }

    def tracked_tables(self) -> List[str]:
        return list(self._collections()) + [repositories.COLLABORATORS, repositories.MEMBERS]

    def apply_change(self, table: str, payload: Mapping[str, Any]) -> None:
        """Patch the snapshot with one change event.

        Accepts both the JS-style payload (``eventType``/``new``/``old``) and the
        Python realtime payload (``data.type``/``data.record``/``data.old_record``).
        """
        if table not in self.tracked_tables():
            logger.debug(f"Ignoring change on untracked table {table}")
            return

        data = payload.get("data") or {}
        event = (payload.get("eventType") or data.get("type") or "").upper()
        new = payload.get("new") or data.get("record") or {}
        old = payload.get("old") or data.get("old_record") or {}
        if event not in EVENTS:
            logger.warning(f"Unknown change event {event!r} on {table}")
            return

        if table == repositories.COLLABORATORS:
            self._apply_collaborator(event, new or old)
        elif table == repositories.MEMBERS:
            self._apply_member(event, new, old)
        else:
            items, mapper = self._collections()[table]
            if event == "DELETE":
                items.pop(str(old.get(repositories.ID_COLUMNS[table])), None)
            else:
                item = mapper(new)
                items[item.id] = item
        logger.debug(f"Applied {event} on {table}")

    def _apply_collaborator(self, event: str, link: Mapping[str, Any]) -> None:
        task_id, user_id = as_id(link.get("id_tarefa")), as_id(link.get("id_colaborador"))
        task = self.tasks.get(task_id)
        if task is None or user_id is None:
            return
        ids = [i for i in task.collaborator_ids if i != user_id]
        if event != "DELETE":
            ids.append(user_id)
        self.tasks[task_id] = task.model_copy(update={"collaborator_ids": ids})

    def _apply_member(self, event: str, new: Mapping[str, Any], old: Mapping[str, Any]) -> None:
        member = map_db_member(old if event == "DELETE" else new)
        key = (member.project_id, member.user_id)
        self.members = [m for m in self.members if (m.project_id, m.user_id) != key]
        if event != "DELETE":
            self.members.append(member)

    def handler(self, table: str) -> Callable[[Mapping[str, Any]], None]:
        return lambda payload: self.apply_change(table, payload)

    async def subscribe(self, async_db) -> None:
        """Follow the change feed of every tracked table."""
        for table in self.tracked_tables():
            channel = async_db.channel(f"public:{table}")
            channel.on_postgres_changes("*", schema="public", table=table, callback=self.handler(table))
            await channel.subscribe()
            logger.info(f"Subscribed to realtime changes on {table}")

    def users_list(self) -> List[User]:
        return list(self.users.values())

    def tasks_list(self) -> List[Task]:
        return list(self.tasks.values())

    def timesheets_list(self) -> List[TimesheetEntry]:
        return list(self.timesheets.values())

    def projects_list(self) -> List[Project]:
        return list(self.projects.values())
