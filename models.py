from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional

Status = Literal["Todo", "In Progress", "Review", "Done"]
Priority = Literal["Low", "Medium", "High", "Critical"]
Impact = Literal["Low", "Medium", "High"]
Role = Literal["admin", "developer"]
ClientType = Literal["parceiro", "cliente_final"]

STATUSES: List[str] = ["Todo", "In Progress", "Review", "Done"]

TIME_PATTERN = r"^\d{1,2}:\d{2}$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}"


class Client(BaseModel):
    id: Optional[str] = None
    name: str
    logo_url: Optional[str] = None
    active: bool = True
    client_type: Optional[ClientType] = None
    partner_id: Optional[str] = None
    created: Optional[str] = None
    contract: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = None
    logo_url: Optional[str] = None
    active: Optional[bool] = None
    client_type: Optional[ClientType] = None
    partner_id: Optional[str] = None
    contract: Optional[str] = None


class Project(BaseModel):
    id: Optional[str] = None
    name: str
    client_id: str
    partner_id: Optional[str] = None
    description: Optional[str] = None
    manager: Optional[str] = None
    start_date: Optional[str] = None
    estimated_delivery: Optional[str] = None
    start_date_real: Optional[str] = None
    end_date_real: Optional[str] = None
    budget: Optional[float] = None
    status: Optional[str] = None
    active: bool = True
    sold_hours: float = 0
    sold_value: float = 0


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    client_id: Optional[str] = None
    partner_id: Optional[str] = None
    description: Optional[str] = None
    manager: Optional[str] = None
    start_date: Optional[str] = None
    estimated_delivery: Optional[str] = None
    start_date_real: Optional[str] = None
    end_date_real: Optional[str] = None
    budget: Optional[float] = None
    status: Optional[str] = None
    active: Optional[bool] = None
    sold_hours: Optional[float] = None
    sold_value: Optional[float] = None


class Task(BaseModel):
    id: Optional[str] = None
    external_id: Optional[str] = None
    title: str
    project_id: str
    project_name: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    status: Status = "Todo"
    progress: int = Field(0, ge=0, le=100)
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None
    scheduled_start: Optional[str] = None
    actual_start: Optional[str] = None
    developer: Optional[str] = None
    developer_id: Optional[str] = None
    collaborator_ids: List[str] = []
    priority: Optional[Priority] = None
    impact: Optional[Impact] = None
    risks: Optional[str] = None
    notes: Optional[str] = None
    description: Optional[str] = None
    attachment: Optional[str] = None
    estimated_hours: Optional[float] = None
    days_overdue: int = 0


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    status: Optional[Status] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None
    scheduled_start: Optional[str] = None
    actual_start: Optional[str] = None
    developer: Optional[str] = None
    developer_id: Optional[str] = None
    priority: Optional[Priority] = None
    impact: Optional[Impact] = None
    risks: Optional[str] = None
    notes: Optional[str] = None
    description: Optional[str] = None
    attachment: Optional[str] = None
    estimated_hours: Optional[float] = None


class User(BaseModel):
    id: Optional[str] = None
    name: str
    email: str
    role: Role = "developer"
    avatar_url: Optional[str] = None
    job_title: Optional[str] = None
    active: bool = True
    hourly_cost: float = 0
    daily_available_hours: Optional[float] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    avatar_url: Optional[str] = None
    job_title: Optional[str] = None
    active: Optional[bool] = None
    hourly_cost: Optional[float] = None
    daily_available_hours: Optional[float] = None


class TimesheetEntry(BaseModel):
    id: Optional[str] = None
    user_id: str
    user_name: Optional[str] = None
    client_id: str
    project_id: str
    task_id: str
    date: str = Field(..., pattern=DATE_PATTERN)
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    total_hours: float = 0
    lunch_deduction: bool = False
    duration: Optional[str] = None
    description: Optional[str] = None


class TimesheetSave(TimesheetEntry):
    # New progress for the linked task, reported together with the hours.
    task_progress: Optional[int] = Field(None, ge=0, le=100)


class ProjectMember(BaseModel):
    project_id: str
    user_id: str
    allocation_percentage: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class LoginInput(BaseModel):
    email: str
    password: Optional[str] = None


class SetPasswordInput(BaseModel):
    email: str
    new_password: str
    confirm_password: str


class ImageEditInput(BaseModel):
    image_base64: str
    prompt: str


class ProjectMetrics(BaseModel):
    id: str
    project_name: str
    client_name: str
    status: str
    progress: float
    hours_sold: float
    hours_consumed: float
    hours_remaining: float
    burn_rate: float
    revenue: float
    cost: float
    margin: float
    profit: float
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    planned_progress: float
    is_delayed: bool
    is_critical: bool


class PortfolioSummary(BaseModel):
    total_revenue: float
    total_cost: float
    total_profit: float
    margin_percent: float
    average_margin: float
    total_projects: int
    critical_projects: int
    total_hours_sold: float
    total_hours_consumed: float


class ProjectPerformance(BaseModel):
    project_id: str
    committed_cost: float
    weighted_progress: float
    mean_progress: float
    total_estimated_hours: float
    planned_progress: float
    timeline_status: str


class Availability(BaseModel):
    user_id: str
    month: str
    capacity: int
    allocated: int
    task_allocated: int = 0
    available: int
    worked: float


class HoursBreakdown(BaseModel):
    by_client: Dict[str, float]
    by_project: Dict[str, float]
    by_user: Dict[str, float]
