import base64
import binascii
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from postgrest import APIError as PostgrestAPIError

import auth
import capacity
import gpt
import metrics
import repositories
from config import CORS_ORIGINS, REALTIME_ENABLED
from db import get_async_supabase, get_supabase
from delays import sort_tasks, with_delay
from loggers import setup_server_logger
from models import (STATUSES, Availability, Client, ClientUpdate, HoursBreakdown, ImageEditInput,
                    LoginInput, Project, ProjectPerformance, ProjectUpdate, SetPasswordInput, Task,
                    TaskUpdate, TimesheetEntry, TimesheetSave, User, UserUpdate)
from normalizers import (client_to_db, map_db_client, map_db_project, map_db_task, map_db_timesheet,
                         map_db_user, project_to_db, task_to_db, timesheet_to_db, user_to_db)
from snapshot import Snapshot
from timesheets import calculate_total_hours

logger = setup_server_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.snapshot = None
    if REALTIME_ENABLED:
        live = Snapshot.load(get_supabase())
        await live.subscribe(await get_async_supabase())
        app.state.snapshot = live
        logger.info("Realtime snapshot loaded")
    yield


# FastAPI setup
app = FastAPI(title="Project Tracker", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PostgrestAPIError)
async def remote_error_handler(request: Request, exc: PostgrestAPIError):
    logger.error(f"Remote call failed on {request.method} {request.url.path}: {exc.message}", exc_info=exc)
    return JSONResponse(status_code=502, content={"detail": f"Remote database error: {exc.message}"})


@app.exception_handler(auth.AuthError)
async def auth_error_handler(request: Request, exc: auth.AuthError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def get_snapshot(request: Request, db=Depends(get_supabase)) -> Snapshot:
    live = getattr(request.app.state, "snapshot", None)
    return live if live is not None else Snapshot.load(db)


def patch_snapshot(request: Request, table: str, event: str, row: Optional[dict]) -> None:
    """Apply our own write to the live snapshot before the change feed echoes it."""
    live = getattr(request.app.state, "snapshot", None)
    if live is not None and row:
        live.apply_change(table, {"eventType": event, "new": row, "old": row})


def not_found(kind: str, item_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{kind} {item_id} not found")


def remove_row(request: Request, db, table: str, row_id: str, kind: str, hard: bool = True) -> None:
    """Delete a row, or only mark it inactive when ``hard`` is false; 404 when it does not exist."""
    if hard:
        if not repositories.delete_row(db, table, row_id):
            raise not_found(kind, row_id)
        patch_snapshot(request, table, "DELETE", {repositories.ID_COLUMNS[table]: row_id})
        return
    row = repositories.deactivate_row(db, table, row_id)
    if not row:
        raise not_found(kind, row_id)
    patch_snapshot(request, table, "UPDATE", row)


@app.get("/health")
async def health():
    return {"status": "ok"}


# ---------------------------------------------------------------- clients

@app.get("/clients", response_model=List[Client])
def list_clients(include_inactive: bool = False, db=Depends(get_supabase)):
    clients = repositories.fetch_clients(db)
    return clients if include_inactive else [c for c in clients if c.active]


@app.get("/clients/{client_id}", response_model=Client)
def read_client(client_id: str, db=Depends(get_supabase)):
    client = repositories.get_client(db, client_id)
    if not client:
        raise not_found("Client", client_id)
    return client


@app.get("/clients/{client_id}/projects", response_model=List[Project])
def list_client_projects(client_id: str, include_inactive: bool = False, db=Depends(get_supabase)):
    projects = repositories.fetch_projects(db, client_id=client_id)
    return projects if include_inactive else [p for p in projects if p.active]


@app.post("/clients", response_model=Client, status_code=201)
def create_client(client: Client, request: Request, db=Depends(get_supabase)):
    if client.partner_id and not repositories.get_client(db, client.partner_id):
        raise HTTPException(status_code=400, detail=f"Partner {client.partner_id} does not exist")
    row = repositories.insert_row(db, repositories.CLIENTS, client_to_db(client.model_dump(exclude={"id"})))
    patch_snapshot(request, repositories.CLIENTS, "INSERT", row)
    return map_db_client(row)


@app.put("/clients/{client_id}", response_model=Client)
def update_client(client_id: str, update: ClientUpdate, request: Request, db=Depends(get_supabase)):
    row = repositories.update_row(db, repositories.CLIENTS, client_id,
                                  client_to_db(update.model_dump(exclude_unset=True)))
    if not row:
        raise not_found("Client", client_id)
    patch_snapshot(request, repositories.CLIENTS, "UPDATE", row)
    return map_db_client(row)


@app.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: str, request: Request, hard: bool = False, db=Depends(get_supabase)):
    remove_row(request, db, repositories.CLIENTS, client_id, "Client", hard)
    return Response(status_code=204)


# --------------------------------------------------------------- projects

@app.get("/projects", response_model=List[Project])
def list_projects(include_inactive: bool = False, db=Depends(get_supabase)):
    projects = repositories.fetch_projects(db)
    return projects if include_inactive else [p for p in projects if p.active]


@app.get("/projects/{project_id}", response_model=Project)
def read_project(project_id: str, db=Depends(get_supabase)):
    project = repositories.get_project(db, project_id)
    if not project:
        raise not_found("Project", project_id)
    return project


@app.post("/projects", response_model=Project, status_code=201)
def create_project(project: Project, request: Request, db=Depends(get_supabase)):
    if not repositories.get_client(db, project.client_id):
        raise HTTPException(status_code=400, detail=f"Client {project.client_id} does not exist")
    data = project.model_dump(exclude={"id"})
    data["status"] = project.status or "Em andamento"
    row = repositories.insert_row(db, repositories.PROJECTS, project_to_db(data))
    patch_snapshot(request, repositories.PROJECTS, "INSERT", row)
    return map_db_project(row)


@app.put("/projects/{project_id}", response_model=Project)
def update_project(project_id: str, update: ProjectUpdate, request: Request, db=Depends(get_supabase)):
    row = repositories.update_row(db, repositories.PROJECTS, project_id,
                                  project_to_db(update.model_dump(exclude_unset=True)))
    if not row:
        raise not_found("Project", project_id)
    patch_snapshot(request, repositories.PROJECTS, "UPDATE", row)
    return map_db_project(row)


@app.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: str, request: Request, hard: bool = False, db=Depends(get_supabase)):
    remove_row(request, db, repositories.PROJECTS, project_id, "Project", hard)
    return Response(status_code=204)


@app.get("/projects/{project_id}/performance", response_model=ProjectPerformance)
def project_performance(project_id: str, snapshot: Snapshot = Depends(get_snapshot)):
    if project_id not in snapshot.projects:
        raise not_found("Project", project_id)
    tasks = snapshot.tasks_list()
    project = metrics.enrich_projects_with_task_dates([snapshot.projects[project_id]], tasks)[0]
    return metrics.project_performance(project, tasks, snapshot.timesheets_list(), snapshot.users)


@app.get("/projects/{project_id}/deadline")
def project_deadline(project_id: str, snapshot: Snapshot = Depends(get_snapshot)):
    project = snapshot.projects.get(project_id)
    if not project:
        raise not_found("Project", project_id)
    team_ids = {m.user_id for m in snapshot.members if m.project_id == project_id}
    team = [u for u in snapshot.users_list() if u.id in team_ids and u.active]
    deadline = capacity.calculate_project_deadline(project.start_date, project.sold_hours, team)
    return {"project_id": project_id, "estimated_delivery": deadline or None, "team_size": len(team)}


@app.post("/projects/{project_id}/status-report")
def project_status_report(project_id: str, snapshot: Snapshot = Depends(get_snapshot)):
    project = snapshot.projects.get(project_id)
    if not project:
        raise not_found("Project", project_id)
    project_metrics = metrics.project_metrics(project, snapshot.clients, snapshot.tasks_list(),
                                              snapshot.timesheets_list(), snapshot.users)
    return {"project_id": project_id, "report": gpt.generate_status_report(project_metrics)}


# ------------------------------------------------------------------ tasks

def resolve_developer_id(db, developer: Optional[str], developer_id: Optional[str]):
    """Owner id from the developer name, falling back to an explicit ``developer_id``."""
    if not developer:
        return developer_id
    found = repositories.find_user_id_by_name(db, developer)
    if found is not None:
        return found
    if developer_id:
        return developer_id
    raise HTTPException(status_code=400, detail=f"Developer {developer} not found")


@app.get("/tasks", response_model=List[Task])
def list_tasks(project_id: Optional[str] = None, client_id: Optional[str] = None,
               user_id: Optional[str] = None, status: Optional[str] = None, db=Depends(get_supabase)):
    users_by_id = {u.id: u for u in repositories.fetch_users(db)}
    tasks = repositories.fetch_tasks(db, project_id=project_id, client_id=client_id,
                                     user_id=user_id, users_by_id=users_by_id)
    if status:
        tasks = [t for t in tasks if t.status == status]
    today = date.today()
    return [with_delay(t, today) for t in tasks]


@app.get("/tasks/{task_id}", response_model=Task)
def read_task(task_id: str, db=Depends(get_supabase)):
    task = repositories.get_task(db, task_id, {u.id: u for u in repositories.fetch_users(db)})
    if not task:
        raise not_found("Task", task_id)
    return with_delay(task)


@app.post("/tasks", response_model=Task, status_code=201)
def create_task(task: Task, request: Request, db=Depends(get_supabase)):
    project = repositories.get_project(db, task.project_id)
    if not project:
        raise HTTPException(status_code=400, detail=f"Project {task.project_id} does not exist")
    client_id = task.client_id or project.client_id
    if not repositories.get_client(db, client_id):
        raise HTTPException(status_code=400, detail=f"Client {client_id} does not exist")

    data = task.model_dump(exclude={"id", "external_id", "project_name", "client_name", "developer",
                                    "collaborator_ids", "days_overdue"})
    data["client_id"] = client_id
    data["developer_id"] = resolve_developer_id(db, task.developer, task.developer_id)
    row = repositories.insert_row(db, repositories.TASKS, task_to_db(data))
    patch_snapshot(request, repositories.TASKS, "INSERT", row)
    return with_delay(map_db_task(row))


@app.put("/tasks/{task_id}", response_model=Task)
def update_task(task_id: str, update: TaskUpdate, request: Request, db=Depends(get_supabase)):
    data = update.model_dump(exclude_unset=True)
    if "developer" in data or "developer_id" in data:
        data["developer_id"] = resolve_developer_id(db, data.pop("developer", None), data.get("developer_id"))
    row = repositories.update_row(db, repositories.TASKS, task_id, task_to_db(data))
    if not row:
        raise not_found("Task", task_id)
    patch_snapshot(request, repositories.TASKS, "UPDATE", row)
    return with_delay(map_db_task(row))


@app.delete("/tasks/{task_id}", status_code=204)
def delete_task(task_id: str, request: Request, db=Depends(get_supabase)):
    remove_row(request, db, repositories.TASKS, task_id, "Task")
    return Response(status_code=204)


@app.get("/kanban", response_model=Dict[str, List[Task]])
def kanban(project_id: Optional[str] = None, user_id: Optional[str] = None,
           snapshot: Snapshot = Depends(get_snapshot)):
    tasks = snapshot.tasks_list()
    if project_id:
        tasks = [t for t in tasks if t.project_id == project_id]
    if user_id:
        tasks = [t for t in tasks if t.developer_id == user_id or user_id in t.collaborator_ids]
    ordered = sort_tasks(tasks)
    return {status: [t for t in ordered if t.status == status] for status in STATUSES}


# ------------------------------------------------------------------ users

@app.get("/users", response_model=List[User])
def list_users(include_inactive: bool = False, db=Depends(get_supabase)):
    users = repositories.fetch_users(db)
    return users if include_inactive else [u for u in users if u.active]


@app.get("/users/{user_id}", response_model=User)
def read_user(user_id: str, db=Depends(get_supabase)):
    user = repositories.get_user(db, user_id)
    if not user:
        raise not_found("User", user_id)
    return user


@app.post("/users", response_model=User, status_code=201)
def create_user(user: User, request: Request, db=Depends(get_supabase)):
    if repositories.find_user_by_email(db, user.email):
        raise HTTPException(status_code=409, detail=f"E-mail {user.email} already registered")
    row = repositories.insert_row(db, repositories.USERS, user_to_db(user.model_dump(exclude={"id"})))
    patch_snapshot(request, repositories.USERS, "INSERT", row)
    return map_db_user(row)


@app.put("/users/{user_id}", response_model=User)
def update_user(user_id: str, update: UserUpdate, request: Request, db=Depends(get_supabase)):
    row = repositories.update_row(db, repositories.USERS, user_id,
                                  user_to_db(update.model_dump(exclude_unset=True)))
    if not row:
        raise not_found("User", user_id)
    patch_snapshot(request, repositories.USERS, "UPDATE", row)
    return map_db_user(row)


@app.delete("/users/{user_id}", status_code=204)
def deactivate_user(user_id: str, request: Request, db=Depends(get_supabase)):
    remove_row(request, db, repositories.USERS, user_id, "User", hard=False)
    return Response(status_code=204)


@app.get("/users/{user_id}/tasks", response_model=List[Task])
def user_tasks(user_id: str, snapshot: Snapshot = Depends(get_snapshot)):
    if user_id not in snapshot.users:
        raise not_found("User", user_id)
    tasks = [t for t in snapshot.tasks_list() if t.developer_id == user_id or user_id in t.collaborator_ids]
    return sort_tasks(tasks)


@app.get("/users/{user_id}/availability", response_model=Availability)
def user_availability(user_id: str, month: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
                      snapshot: Snapshot = Depends(get_snapshot)):
    user = snapshot.users.get(user_id)
    if not user:
        raise not_found("User", user_id)
    month = month or date.today().strftime("%Y-%m")
    return capacity.get_user_monthly_availability(user, month, snapshot.projects_list(), snapshot.members,
                                                  snapshot.timesheets_list(), snapshot.tasks_list())


# ------------------------------------------------------------- timesheets

def entry_hours(entry: TimesheetEntry) -> float:
    try:
        return calculate_total_hours(entry.start_time, entry.end_time, entry.lunch_deduction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def report_task_progress(db, request: Request, entry: TimesheetSave) -> None:
    """Carry the progress reported with the hours over to the task; 100% closes it."""
    if entry.task_progress is None:
        return
    task = repositories.get_task(db, entry.task_id)
    if not task or task.status == "Done" or task.actual_delivery:
        return
    update = {"progress": entry.task_progress}
    if entry.task_progress == 100:
        update.update(status="Done", actual_delivery=entry.date[:10])
    row = repositories.update_row(db, repositories.TASKS, task.id, task_to_db(update))
    patch_snapshot(request, repositories.TASKS, "UPDATE", row)


def save_timesheet(db, request: Request, entry: TimesheetSave, entry_id: Optional[str] = None) -> TimesheetEntry:
    task = repositories.get_task(db, entry.task_id)
    if not task:
        raise HTTPException(status_code=400, detail=f"Task {entry.task_id} does not exist")
    if entry.project_id != task.project_id:
        raise HTTPException(status_code=400, detail=f"Task {task.id} belongs to project {task.project_id}")
    if task.client_id and entry.client_id != task.client_id:
        raise HTTPException(status_code=400, detail=f"Task {task.id} belongs to client {task.client_id}")
    data = entry.model_dump(exclude={"id", "user_name", "task_progress"})
    data["total_hours"] = entry_hours(entry)
    payload = timesheet_to_db(data)

    if entry_id is None:
        row = repositories.insert_row(db, repositories.TIMESHEETS, payload)
        event = "INSERT"
    else:
        row = repositories.update_row(db, repositories.TIMESHEETS, entry_id, payload)
        if not row:
            raise not_found("Timesheet entry", entry_id)
        event = "UPDATE"
    patch_snapshot(request, repositories.TIMESHEETS, event, row)
    report_task_progress(db, request, entry)
    return map_db_timesheet(row)


@app.get("/timesheets", response_model=List[TimesheetEntry])
def list_timesheets(user_id: Optional[str] = None, from_date: Optional[str] = None,
                    to_date: Optional[str] = None, db=Depends(get_supabase)):
    return repositories.fetch_timesheets(db, user_id=user_id, from_date=from_date, to_date=to_date)


@app.get("/timesheets/{entry_id}", response_model=TimesheetEntry)
def read_timesheet(entry_id: str, db=Depends(get_supabase)):
    entry = repositories.get_timesheet(db, entry_id)
    if not entry:
        raise not_found("Timesheet entry", entry_id)
    return entry


@app.post("/timesheets", response_model=TimesheetEntry, status_code=201)
def create_timesheet(entry: TimesheetSave, request: Request, db=Depends(get_supabase)):
    return save_timesheet(db, request, entry)


@app.put("/timesheets/{entry_id}", response_model=TimesheetEntry)
def update_timesheet(entry_id: str, entry: TimesheetSave, request: Request, db=Depends(get_supabase)):
    return save_timesheet(db, request, entry, entry_id)


@app.delete("/timesheets/{entry_id}", status_code=204)
def delete_timesheet(entry_id: str, request: Request, db=Depends(get_supabase)):
    remove_row(request, db, repositories.TIMESHEETS, entry_id, "Timesheet entry")
    return Response(status_code=204)


# ------------------------------------------------------------- dashboards

@app.get("/dashboard/portfolio")
def portfolio(status_filter: str = Query("all", alias="filter", pattern="^(all|active|critical)$"), sort: str = "margin",
              direction: str = Query("desc", pattern="^(asc|desc)$"),
              snapshot: Snapshot = Depends(get_snapshot)):
    project_metrics = metrics.portfolio_metrics(snapshot.projects_list(), snapshot.clients,
                                                snapshot.tasks_list(), snapshot.timesheets_list(),
                                                snapshot.users)
    try:
        listed = metrics.filter_and_sort(project_metrics, status_filter, sort, direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"summary": metrics.portfolio_summary(project_metrics), "projects": listed}


@app.get("/dashboard/hours", response_model=HoursBreakdown)
def hours_breakdown(snapshot: Snapshot = Depends(get_snapshot)):
    entries = snapshot.timesheets_list()
    return HoursBreakdown(
        by_client=metrics.hours_per_client(entries),
        by_project=metrics.hours_per_project(entries),
        by_user=metrics.hours_per_user(entries),
    )


@app.get("/dashboard/progress")
def progress_by_project(snapshot: Snapshot = Depends(get_snapshot)):
    return metrics.mean_progress_by_project(snapshot.tasks_list())


# ------------------------------------------------------------------- auth

@app.post("/auth/login")
def login(data: LoginInput, db=Depends(get_supabase)):
    return auth.login(db, data.email, data.password)


@app.post("/auth/set-password")
def set_password(data: SetPasswordInput, db=Depends(get_supabase)):
    return auth.set_password(db, data.email, data.new_password, data.confirm_password)


# -------------------------------------------------------------------- ai

@app.post("/images/edit")
def edit_image(data: ImageEditInput):
    if not data.prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")
    try:
        image = base64.b64decode(data.image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image must be base64 encoded")

    try:
        edited = gpt.edit_image(image, data.prompt)
    except Exception as e:
        logger.error(f"Image edit failed: {e}", exc_info=e)
        raise HTTPException(status_code=502, detail=f"Image edit failed: {str(e)}")
    return {"image_base64": base64.b64encode(edited).decode("ascii")}
