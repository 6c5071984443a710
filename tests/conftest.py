import fnmatch
import itertools
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from postgrest import APIError

from db import get_supabase
from main import app
from snapshot import Snapshot
from repositories import ID_COLUMNS


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Just enough of the postgrest query builder for the repositories."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.max_rows = None

    def select(self, *columns):
        self.action = "select"
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def ilike(self, column, pattern):
        glob = pattern.lower().replace("%", "*").replace("_", "?")
        self.filters.append(lambda row: fnmatch.fnmatchcase(str(row.get(column) or "").lower(), glob))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def execute(self):
        if self.table in self.db.failing_tables:
            raise APIError({"message": f"{self.table} unavailable", "code": "500"})
        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "insert":
            row = dict(self.payload)
            id_column = ID_COLUMNS.get(self.table)
            if id_column and row.get(id_column) is None:
                row[id_column] = next(self.db.ids)
            rows.append(row)
            return FakeResponse([dict(row)])

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in matched])
        if self.action == "delete":
            self.db.tables[self.table] = [r for r in rows if r not in matched]
            return FakeResponse([dict(r) for r in matched])

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self.max_rows is not None:
            matched = matched[:self.max_rows]
        return FakeResponse([dict(r) for r in matched])


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.failing_tables = set()
        self.ids = itertools.count(1000)

    def table(self, name):
        return FakeQuery(self, name)


def days_from_today(days):
    return (date.today() + timedelta(days=days)).isoformat()


def seed_tables():
    return {
        "dim_clientes": [
            {"ID_Cliente": 1, "NomeCliente": "Acme", "NewLogo": "acme.png", "ativo": True},
            {"ID_Cliente": 2, "NomeCliente": "Globex", "NewLogo": None, "ativo": False},
        ],
        "dim_projetos": [
            {"ID_Projeto": 10, "NomeProjeto": "Portal", "ID_Cliente": 1, "ativo": True,
             "startDate": days_from_today(-30), "estimatedDelivery": days_from_today(30),
             "horas_vendidas": 100, "valor_total_rs": 1000},
            {"ID_Projeto": 11, "NomeProjeto": "Legacy", "ID_Cliente": 1, "ativo": False},
        ],
        "fato_tarefas": [
            {"id_tarefa_novo": 100, "Afazer": "Login page", "ID_Projeto": 10, "ID_Cliente": 1,
             "ID_Colaborador": 1, "StatusTarefa": "Em Andamento", "Porcentagem": 50,
             "entrega_estimada": days_from_today(-2)},
            {"id_tarefa_novo": 101, "Afazer": "Dashboard", "ID_Projeto": 10, "ID_Cliente": 1,
             "ID_Colaborador": 1, "StatusTarefa": "A Fazer", "Porcentagem": 0,
             "entrega_estimada": days_from_today(5)},
            {"id_tarefa_novo": 102, "Afazer": "Setup", "ID_Projeto": 10, "ID_Cliente": 1,
             "ID_Colaborador": 2, "StatusTarefa": "Concluído", "Porcentagem": 100,
             "entrega_estimada": days_from_today(-10)},
        ],
        "dim_colaboradores": [
            {"ID_Colaborador": 1, "NomeColaborador": "Ana Lima", "E-mail": "Ana@Example.com",
             "papel": "Administrador", "ativo": True, "custo_hora": 50},
            {"ID_Colaborador": 2, "NomeColaborador": "Bruno Reis", "E-mail": "bruno@example.com",
             "papel": "Desenvolvedor", "ativo": True, "custo_hora": 40},
        ],
        "horas_trabalhadas": [
            {"ID_Horas_Trabalhadas": 500, "ID_Colaborador": 1, "ID_Cliente": 1, "ID_Projeto": 10,
             "id_tarefa_novo": 100, "Data": days_from_today(-1), "Hora_Inicio": "09:00",
             "Hora_Fim": "12:00", "Horas_Trabalhadas": 3.0},
        ],
        "project_members": [
            {"id_projeto": 10, "id_colaborador": 1, "allocation_percentage": 50},
        ],
        "tarefa_colaboradores": [],
        "user_credentials": [],
    }


@pytest.fixture
def fake_db():
    return FakeSupabase(seed_tables())


@pytest.fixture
def client(fake_db):
    app.dependency_overrides[get_supabase] = lambda: fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def live_snapshot(client, fake_db, monkeypatch):
    """Serve the dashboards from one snapshot kept current by the API's writes."""
    snapshot = Snapshot.load(fake_db)
    monkeypatch.setattr(app.state, "snapshot", snapshot, raising=False)
    return snapshot
