"""Translation between remote table rows and the models in models.py.

The remote tables grew over time with mixed naming (Portuguese labels, mixed
casing), so every column name lives here and nowhere else.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

from models import Client, Project, ProjectMember, Task, TimesheetEntry, User
from timesheets import format_duration

NO_TITLE = "(Sem título)"
NO_NAME = "Sem nome"

STATUS_TO_DB = {
    "Done": "Concluído",
    "In Progress": "Em Andamento",
    "Review": "Revisão",
    "Todo": "A Fazer",
}
PRIORITY_TO_DB = {"Critical": "Crítica", "High": "Alta", "Medium": "Média", "Low": "Baixa"}
IMPACT_TO_DB = {"High": "Alto", "Medium": "Médio", "Low": "Baixo"}

CLIENT_COLUMNS = {
    "name": "NomeCliente",
    "logo_url": "NewLogo",
    "active": "ativo",
    "client_type": "tipo_cliente",
    "partner_id": "partner_id",
    "created": "Criado",
    "contract": "Contrato",
}

PROJECT_COLUMNS = {
    "name": "NomeProjeto",
    "client_id": "ID_Cliente",
    "partner_id": "partner_id",
    "description": "description",
    "manager": "manager",
    "start_date": "startDate",
    "estimated_delivery": "estimatedDelivery",
    "start_date_real": "inicio_real",
    "end_date_real": "fim_real",
    "budget": "budget",
    "status": "StatusProjeto",
    "active": "ativo",
    "sold_hours": "horas_vendidas",
    "sold_value": "valor_total_rs",
}

TASK_COLUMNS = {
    "title": "Afazer",
    "project_id": "ID_Projeto",
    "client_id": "ID_Cliente",
    "developer_id": "ID_Colaborador",
    "status": "StatusTarefa",
    "progress": "Porcentagem",
    "estimated_delivery": "entrega_estimada",
    "actual_delivery": "entrega_real",
    "scheduled_start": "inicio_previsto",
    "actual_start": "inicio_real",
    "priority": "Prioridade",
    "impact": "Impacto",
    "risks": "Riscos",
    "notes": "Observações",
    "description": "description",
    "attachment": "attachment",
    "estimated_hours": "horas_estimadas",
}

USER_COLUMNS = {
    "name": "NomeColaborador",
    "email": "E-mail",
    "role": "papel",
    "avatar_url": "avatar_url",
    "job_title": "Cargo",
    "active": "ativo",
    "hourly_cost": "custo_hora",
    "daily_available_hours": "horas_disponiveis_dia",
}

TIMESHEET_COLUMNS = {
    "user_id": "ID_Colaborador",
    "client_id": "ID_Cliente",
    "project_id": "ID_Projeto",
    "task_id": "id_tarefa_novo",
    "date": "Data",
    "start_time": "Hora_Inicio",
    "end_time": "Hora_Fim",
    "total_hours": "Horas_Trabalhadas",
    "lunch_deduction": "Almoco_Deduzido",
    "description": "Descricao",
}

ID_FIELDS = {"client_id", "project_id", "partner_id", "developer_id", "user_id", "task_id"}


def normalize_status(raw: Optional[str]) -> str:
    if not raw:
        return "Todo"
    s = raw.lower().strip()
    if any(k in s for k in ("conclu", "done", "finaliz")):
        return "Done"
    if any(k in s for k in ("trabalhando", "andamento", "progresso", "progress", "execu")):
        return "In Progress"
    if any(k in s for k in ("teste", "revis", "review", "valida")):
        return "Review"
    return "Todo"


def normalize_priority(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    s = raw.lower().strip()
    if any(k in s for k in ("critica", "crítica", "critical", "urgente")):
        return "Critical"
    if "alta" in s or "high" in s:
        return "High"
    if any(k in s for k in ("media", "média", "medium")):
        return "Medium"
    if "baixa" in s or "low" in s:
        return "Low"
    return None


def normalize_impact(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    s = raw.lower().strip()
    if "alto" in s or "high" in s:
        return "High"
    if any(k in s for k in ("medio", "médio", "medium")):
        return "Medium"
    if "baixo" in s or "low" in s:
        return "Low"
    return None


def format_date(value: Optional[str], today: Optional[date] = None) -> str:
    """Return the ``YYYY-MM-DD`` part of a remote date value.

    A missing value means "one week from today", which is what new tasks
    without a delivery date get.
    """
    today = today or date.today()
    if not value:
        return (today + timedelta(days=7)).isoformat()
    value = str(value).strip()
    head = value.split("T")[0].split(" ")[0]
    try:
        return date.fromisoformat(head).isoformat()
    except ValueError:
        return today.isoformat()


def optional_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return str(value).split("T")[0]


def format_time(value: Any) -> str:
    """``HH:MM`` from a remote time such as ``09:00:00`` or ``9:30:00+00``; ``00:00`` when unreadable."""
    parts = str(value or "").strip().split(":")
    if len(parts) < 2:
        return "00:00"
    hours, minutes = parts[0], parts[1][:2]
    if not (hours.isdigit() and minutes.isdigit() and len(minutes) == 2):
        return "00:00"
    if int(hours) > 23 or int(minutes) > 59:
        return "00:00"
    return f"{int(hours):02d}:{minutes}"


def clamp_progress(value: Any) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return 0
    return min(100, max(0, number))


def as_id(value: Any) -> Optional[str]:
    if value is None or value == "" or str(value) == "null":
        return None
    return str(value)


def to_remote_id(value: Any) -> Any:
    """Remote id columns are integers; keep anything non-numeric as given."""
    if value is None:
        return None
    text = str(value)
    return int(text) if text.isdigit() else value


def _number(value: Any, default: float = 0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def map_db_client(row: Mapping[str, Any]) -> Client:
    client_type = row.get("tipo_cliente")
    return Client(
        id=as_id(row.get("ID_Cliente")),
        name=row.get("NomeCliente") or NO_NAME,
        logo_url=row.get("NewLogo") or None,
        active=row.get("ativo") is not False,
        client_type=client_type if client_type in ("parceiro", "cliente_final") else None,
        partner_id=as_id(row.get("partner_id")),
        created=row.get("Criado"),
        contract=row.get("Contrato"),
    )


def map_db_project(row: Mapping[str, Any]) -> Project:
    return Project(
        id=as_id(row.get("ID_Projeto")),
        name=row.get("NomeProjeto") or NO_NAME,
        client_id=as_id(row.get("ID_Cliente")) or "",
        partner_id=as_id(row.get("partner_id")),
        description=row.get("description"),
        manager=row.get("manager"),
        start_date=optional_date(row.get("startDate")),
        estimated_delivery=optional_date(row.get("estimatedDelivery")),
        start_date_real=optional_date(row.get("inicio_real")),
        end_date_real=optional_date(row.get("fim_real")),
        budget=row.get("budget"),
        status=row.get("StatusProjeto"),
        active=row.get("ativo") is not False,
        sold_hours=_number(row.get("horas_vendidas")),
        sold_value=_number(row.get("valor_total_rs")),
    )


def map_db_user(row: Mapping[str, Any]) -> User:
    role = str(row.get("papel") or "").strip().lower()
    return User(
        id=as_id(row.get("ID_Colaborador")),
        name=row.get("NomeColaborador") or NO_NAME,
        email=str(row.get("E-mail") or row.get("email") or "").strip().lower(),
        role="admin" if role in ("administrador", "admin") else "developer",
        avatar_url=row.get("avatar_url") or None,
        job_title=row.get("Cargo") or row.get("cargo") or None,
        active=row.get("ativo") is not False,
        hourly_cost=_number(row.get("custo_hora")),
        daily_available_hours=row.get("horas_disponiveis_dia"),
    )


def map_db_task(row: Mapping[str, Any], users_by_id: Optional[Dict[str, User]] = None,
                project_name: Optional[str] = None, client_name: Optional[str] = None,
                collaborator_ids: Optional[List[str]] = None) -> Task:
    developer_id = as_id(row.get("ID_Colaborador"))
    developer = None
    if developer_id and users_by_id and developer_id in users_by_id:
        developer = users_by_id[developer_id].name

    title = row.get("Afazer")
    notes = row.get("Observações") or row.get("notes")
    return Task(
        id=as_id(row.get("id_tarefa_novo")),
        external_id=row.get("ID_Tarefa") or None,
        title=title if title and title != "null" else NO_TITLE,
        project_id=as_id(row.get("ID_Projeto")) or "",
        project_name=project_name,
        client_id=as_id(row.get("ID_Cliente")),
        client_name=client_name,
        status=normalize_status(row.get("StatusTarefa")),
        progress=clamp_progress(row.get("Porcentagem")),
        estimated_delivery=format_date(row.get("entrega_estimada")),
        actual_delivery=optional_date(row.get("entrega_real")),
        scheduled_start=optional_date(row.get("inicio_previsto")),
        actual_start=optional_date(row.get("inicio_real")),
        developer=developer,
        developer_id=developer_id,
        collaborator_ids=list(collaborator_ids or []),
        priority=normalize_priority(row.get("Prioridade")),
        impact=normalize_impact(row.get("Impacto")),
        risks=row.get("Riscos") or None,
        notes=notes or None,
        description=row.get("description") or None,
        attachment=row.get("attachment") or None,
        estimated_hours=row.get("horas_estimadas"),
    )


def map_db_timesheet(row: Mapping[str, Any]) -> TimesheetEntry:
    joined = row.get("dim_colaboradores") or {}
    raw_date = row.get("Data")
    start_time = format_time(row.get("Hora_Inicio"))
    end_time = format_time(row.get("Hora_Fim"))
    lunch_deduction = bool(row.get("Almoco_Deduzido"))
    return TimesheetEntry(
        id=as_id(row.get("ID_Horas_Trabalhadas") or row.get("id")),
        user_id=str(row.get("ID_Colaborador") or ""),
        user_name=joined.get("NomeColaborador") or row.get("NomeColaborador") or "",
        client_id=str(row.get("ID_Cliente") or ""),
        project_id=str(row.get("ID_Projeto") or ""),
        task_id=str(row.get("id_tarefa_novo") or row.get("ID_Tarefa") or ""),
        date=format_date(raw_date) if raw_date else date.today().isoformat(),
        start_time=start_time,
        end_time=end_time,
        total_hours=_number(row.get("Horas_Trabalhadas")),
        lunch_deduction=lunch_deduction,
        duration=format_duration(start_time, end_time, lunch_deduction),
        description=row.get("Descricao") or None,
    )


def map_db_member(row: Mapping[str, Any]) -> ProjectMember:
    return ProjectMember(
        project_id=str(row.get("id_projeto")),
        user_id=str(row.get("id_colaborador")),
        allocation_percentage=row.get("allocation_percentage"),
        start_date=optional_date(row.get("start_date")),
        end_date=optional_date(row.get("end_date")),
    )


def _to_db(data: Mapping[str, Any], columns: Mapping[str, str]) -> Dict[str, Any]:
    payload = {}
    for field, value in data.items():
        if field not in columns:
            continue
        if field in ID_FIELDS:
            value = to_remote_id(value)
        payload[columns[field]] = value
    return payload


def client_to_db(data: Mapping[str, Any]) -> Dict[str, Any]:
    return _to_db(data, CLIENT_COLUMNS)


def project_to_db(data: Mapping[str, Any]) -> Dict[str, Any]:
    return _to_db(data, PROJECT_COLUMNS)


def user_to_db(data: Mapping[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    if "role" in data:
        data["role"] = "Administrador" if data["role"] == "admin" else "Desenvolvedor"
    if data.get("email"):
        data["email"] = data["email"].strip().lower()
    return _to_db(data, USER_COLUMNS)


def task_to_db(data: Mapping[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    if "status" in data:
        data["status"] = STATUS_TO_DB.get(data["status"], STATUS_TO_DB["Todo"])
    if "priority" in data:
        data["priority"] = PRIORITY_TO_DB.get(data["priority"])
    if "impact" in data:
        data["impact"] = IMPACT_TO_DB.get(data["impact"])
    return _to_db(data, TASK_COLUMNS)


def timesheet_to_db(data: Mapping[str, Any]) -> Dict[str, Any]:
    return _to_db(data, TIMESHEET_COLUMNS)
