"""Table access for each entity through the Supabase query builder."""
from typing import Any, Dict, List, Optional

from loggers import setup_supabase_logger
from models import Client, Project, ProjectMember, Task, TimesheetEntry, User
from normalizers import (map_db_client, map_db_member, map_db_project, map_db_task,
                         map_db_timesheet, map_db_user, to_remote_id)

logger = setup_supabase_logger()

CLIENTS = "dim_clientes"
PROJECTS = "dim_projetos"
TASKS = "fato_tarefas"
USERS = "dim_colaboradores"
TIMESHEETS = "horas_trabalhadas"
MEMBERS = "project_members"
COLLABORATORS = "tarefa_colaboradores"
CREDENTIALS = "user_credentials"

ID_COLUMNS = {
    CLIENTS: "ID_Cliente",
    PROJECTS: "ID_Projeto",
    TASKS: "id_tarefa_novo",
    USERS: "ID_Colaborador",
    TIMESHEETS: "ID_Horas_Trabalhadas",
}

TIMESHEET_SELECT = "*, dim_colaboradores(NomeColaborador)"


def _find_row(db, table: str, row_id: str, columns: str = "*") -> Optional[Dict[str, Any]]:
    rows = (db.table(table).select(columns)
            .eq(ID_COLUMNS[table], to_remote_id(row_id))
            .limit(1).execute().data)
    return rows[0] if rows else None


def insert_row(db, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    inserted = db.table(table).insert(payload).execute()
    logger.info(f"Inserted into {table}: {ID_COLUMNS.get(table)}={inserted.data[0].get(ID_COLUMNS.get(table))}")
    return inserted.data[0]


def update_row(db, table: str, row_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not payload:
        return _find_row(db, table, row_id)
    updated = db.table(table).update(payload).eq(ID_COLUMNS[table], to_remote_id(row_id)).execute()
    return updated.data[0] if updated.data else None


def delete_row(db, table: str, row_id: str) -> bool:
    deleted = db.table(table).delete().eq(ID_COLUMNS[table], to_remote_id(row_id)).execute()
    if not deleted.data:
        return False
    logger.info(f"Deleted from {table}: {ID_COLUMNS[table]}={row_id}")
    return True


def deactivate_row(db, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    return update_row(db, table, row_id, {"ativo": False})


# Clients

def fetch_clients(db) -> List[Client]:
    rows = db.table(CLIENTS).select("*").order("ID_Cliente", desc=True).execute().data
    return [map_db_client(r) for r in rows]


def get_client(db, client_id: str) -> Optional[Client]:
    row = _find_row(db, CLIENTS, client_id)
    return map_db_client(row) if row else None


# Projects

def fetch_projects(db, client_id: Optional[str] = None) -> List[Project]:
    query = db.table(PROJECTS).select("*")
    if client_id:
        query = query.eq("ID_Cliente", to_remote_id(client_id))
    rows = query.order("ID_Projeto", desc=True).execute().data
    return [map_db_project(r) for r in rows]


def get_project(db, project_id: str) -> Optional[Project]:
    row = _find_row(db, PROJECTS, project_id)
    return map_db_project(row) if row else None


# Users

def fetch_users(db) -> List[User]:
    rows = db.table(USERS).select("*").order("ID_Colaborador", desc=True).execute().data
    return [map_db_user(r) for r in rows]


def get_user(db, user_id: str) -> Optional[User]:
    row = _find_row(db, USERS, user_id)
    return map_db_user(row) if row else None


def find_user_by_email(db, email: str) -> Optional[User]:
    normalized = email.strip().lower()
    rows = db.table(USERS).select("*").ilike("E-mail", normalized).execute().data
    for row in rows:
        user = map_db_user(row)
        if user.email == normalized:
            return user
    return None


def find_user_id_by_name(db, name: Optional[str]) -> Optional[int]:
    if not name:
        return None
    rows = db.table(USERS).select("ID_Colaborador").eq("NomeColaborador", name).limit(1).execute().data
    return rows[0]["ID_Colaborador"] if rows else None


# Tasks

def fetch_task_collaborators(db, task_id: Optional[str] = None) -> Dict[str, List[str]]:
    """Collaborator user ids per task id, besides each task's owner."""
    query = db.table(COLLABORATORS).select("id_tarefa, id_colaborador")
    if task_id:
        query = query.eq("id_tarefa", to_remote_id(task_id))
    collaborators: Dict[str, List[str]] = {}
    for row in query.execute().data:
        ids = collaborators.setdefault(str(row["id_tarefa"]), [])
        user_id = str(row["id_colaborador"])
        if user_id not in ids:
            ids.append(user_id)
    return collaborators


def fetch_tasks(db, project_id: Optional[str] = None, client_id: Optional[str] = None,
                user_id: Optional[str] = None, users_by_id: Optional[Dict[str, User]] = None) -> List[Task]:
    """Tasks with their collaborators; ``user_id`` matches the owner or a collaborator."""
    query = db.table(TASKS).select("*")
    if project_id:
        query = query.eq("ID_Projeto", to_remote_id(project_id))
    if client_id:
        query = query.eq("ID_Cliente", to_remote_id(client_id))
    rows = query.order("id_tarefa_novo", desc=True).execute().data
    collaborators = fetch_task_collaborators(db)
    tasks = [map_db_task(r, users_by_id, collaborator_ids=collaborators.get(str(r.get("id_tarefa_novo"))))
             for r in rows]
    if user_id:
        tasks = [t for t in tasks if t.developer_id == user_id or user_id in t.collaborator_ids]
    return tasks


def get_task(db, task_id: str, users_by_id: Optional[Dict[str, User]] = None) -> Optional[Task]:
    row = _find_row(db, TASKS, task_id)
    if not row:
        return None
    collaborators = fetch_task_collaborators(db, task_id)
    return map_db_task(row, users_by_id, collaborator_ids=collaborators.get(str(row.get("id_tarefa_novo"))))


# Timesheets

def fetch_timesheets(db, user_id: Optional[str] = None, from_date: Optional[str] = None,
                     to_date: Optional[str] = None) -> List[TimesheetEntry]:
    query = db.table(TIMESHEETS).select(TIMESHEET_SELECT)
    if user_id:
        query = query.eq("ID_Colaborador", to_remote_id(user_id))
    if from_date:
        query = query.gte("Data", from_date)
    if to_date:
        query = query.lte("Data", to_date)
    rows = query.order("Data", desc=True).execute().data
    return [map_db_timesheet(r) for r in rows]


def get_timesheet(db, entry_id: str) -> Optional[TimesheetEntry]:
    row = _find_row(db, TIMESHEETS, entry_id, TIMESHEET_SELECT)
    return map_db_timesheet(row) if row else None


# Project membership

def fetch_project_members(db, user_id: Optional[str] = None) -> List[ProjectMember]:
    query = db.table(MEMBERS).select("*")
    if user_id:
        query = query.eq("id_colaborador", to_remote_id(user_id))
    return [map_db_member(r) for r in query.execute().data]


# Credentials

def get_password_hash(db, user_id: str) -> Optional[str]:
    rows = (db.table(CREDENTIALS).select("password_hash")
            .eq("colaborador_id", to_remote_id(user_id)).limit(1).execute().data)
    return rows[0]["password_hash"] if rows else None


def save_password_hash(db, user_id: str, password_hash: str) -> None:
    db.table(CREDENTIALS).insert({
        "colaborador_id": to_remote_id(user_id),
        "password_hash": password_hash,
    }).execute()
