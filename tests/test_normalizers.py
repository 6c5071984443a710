from datetime import date

import pytest

from models import User
from normalizers import (format_date, format_time, map_db_client, map_db_task, map_db_timesheet,
                         map_db_user, normalize_impact, normalize_priority, normalize_status,
                         task_to_db, timesheet_to_db, user_to_db)


@pytest.mark.parametrize("raw, expected", [
    ("Concluído", "Done"),
    ("finalizado", "Done"),
    ("Em Andamento", "In Progress"),
    ("trabalhando", "In Progress"),
    ("Em testes", "Review"),
    ("Revisão", "Review"),
    ("A Fazer", "Todo"),
    (None, "Todo"),
    ("", "Todo"),
])
def test_normalize_status(raw, expected):
    assert normalize_status(raw) == expected


def test_normalize_priority_and_impact():
    assert normalize_priority("Urgente") == "Critical"
    assert normalize_priority("Alta") == "High"
    assert normalize_priority("media") == "Medium"
    assert normalize_priority("whatever") is None
    assert normalize_impact("Baixo") == "Low"
    assert normalize_impact(None) is None


def test_format_date():
    today = date(2026, 3, 15)
    assert format_date("2026-03-01", today) == "2026-03-01"
    assert format_date("2026-03-01T10:00:00+00:00", today) == "2026-03-01"
    assert format_date(None, today) == "2026-03-22"


def test_map_db_task():
    users = {"7": User(id="7", name="Ana", email="ana@x")}
    row = {"id_tarefa_novo": 1, "Afazer": "null", "ID_Projeto": 3, "ID_Cliente": 4, "ID_Colaborador": 7,
           "StatusTarefa": "Em Andamento", "Porcentagem": "150", "Prioridade": "Alta",
           "entrega_estimada": "2026-03-01T00:00:00", "Observações": "check"}

    task = map_db_task(row, users)

    assert task.id == "1"
    assert task.title == "(Sem título)"
    assert task.project_id == "3"
    assert task.developer == "Ana"
    assert task.status == "In Progress"
    assert task.progress == 100
    assert task.priority == "High"
    assert task.estimated_delivery == "2026-03-01"
    assert task.notes == "check"


def test_map_db_user_and_client():
    user = map_db_user({"ID_Colaborador": 5, "NomeColaborador": None, "E-mail": " X@Y.COM ",
                        "papel": "Administrador", "custo_hora": "42.5"})
    assert user.name == "Sem nome"
    assert user.email == "x@y.com"
    assert user.role == "admin"
    assert user.hourly_cost == 42.5

    client = map_db_client({"ID_Cliente": 9, "NomeCliente": "Acme", "ativo": None, "tipo_cliente": "parceiro"})
    assert client.active
    assert client.client_type == "parceiro"


def test_map_db_timesheet_reads_joined_user_name():
    entry = map_db_timesheet({"ID_Horas_Trabalhadas": 1, "ID_Colaborador": 2, "ID_Cliente": 3, "ID_Projeto": 4,
                              "id_tarefa_novo": 5, "Data": "2026-03-01", "Hora_Inicio": "09:00",
                              "Hora_Fim": "10:30", "Horas_Trabalhadas": 1.5,
                              "dim_colaboradores": {"NomeColaborador": "Ana"}})
    assert entry.user_name == "Ana"
    assert entry.task_id == "5"
    assert entry.total_hours == 1.5


def test_outgoing_payloads_use_remote_columns():
    assert task_to_db({"title": "X", "status": "Done", "priority": "Critical", "project_id": "3"}) == {
        "Afazer": "X", "StatusTarefa": "Concluído", "Prioridade": "Crítica", "ID_Projeto": 3,
    }
    assert user_to_db({"role": "admin", "email": " A@B.com"}) == {"papel": "Administrador", "E-mail": "a@b.com"}
    assert timesheet_to_db({"total_hours": 2.0, "task_id": "abc"}) == {
        "Horas_Trabalhadas": 2.0, "id_tarefa_novo": "abc",
    }


@pytest.mark.parametrize("raw, expected", [
    ("09:00", "09:00"),
    ("9:05", "09:05"),
    ("09:00:00", "09:00"),
    ("18:30:00+00", "18:30"),
    ("25:00", "00:00"),
    ("noon", "00:00"),
    (None, "00:00"),
])
def test_format_time(raw, expected):
    assert format_time(raw) == expected


def test_map_db_timesheet_accepts_time_with_seconds():
    entry = map_db_timesheet({"ID_Horas_Trabalhadas": 1, "ID_Colaborador": 2, "ID_Cliente": 3, "ID_Projeto": 4,
                              "id_tarefa_novo": 5, "Data": "2026-03-01T00:00:00", "Hora_Inicio": "08:00:00",
                              "Hora_Fim": "17:15:00", "Almoco_Deduzido": True, "Horas_Trabalhadas": 8.25})
    assert (entry.start_time, entry.end_time) == ("08:00", "17:15")
    assert entry.date == "2026-03-01"
    assert entry.duration == "8h 15min"
