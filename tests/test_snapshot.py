from snapshot import FALLBACK_USERS, Snapshot


def test_load_builds_collections(fake_db):
    snapshot = Snapshot.load(fake_db)

    assert set(snapshot.clients) == {"1", "2"}
    assert snapshot.tasks["100"].developer == "Ana Lima"
    assert snapshot.timesheets["500"].total_hours == 3.0
    assert snapshot.members[0].user_id == "1"


def test_load_falls_back_to_default_users(fake_db):
    fake_db.tables["dim_colaboradores"] = []
    snapshot = Snapshot.load(fake_db)
    assert snapshot.users_list() == FALLBACK_USERS


def test_insert_update_delete_events(fake_db):
    snapshot = Snapshot.load(fake_db)

    snapshot.apply_change("dim_clientes", {"eventType": "INSERT", "new": {"ID_Cliente": 3, "NomeCliente": "Initech"}})
    assert snapshot.clients["3"].name == "Initech"

    snapshot.apply_change("dim_clientes", {"eventType": "UPDATE", "new": {"ID_Cliente": 3, "NomeCliente": "Initrode"}})
    assert snapshot.clients["3"].name == "Initrode"

    snapshot.apply_change("dim_clientes", {"eventType": "DELETE", "old": {"ID_Cliente": 3}})
    assert "3" not in snapshot.clients


def test_realtime_payload_shape(fake_db):
    snapshot = Snapshot.load(fake_db)
    payload = {"data": {"type": "UPDATE", "table": "fato_tarefas",
                        "record": {"id_tarefa_novo": 101, "Afazer": "Dashboard", "ID_Projeto": 10,
                                   "StatusTarefa": "Concluído", "Porcentagem": 100},
                        "old_record": {"id_tarefa_novo": 101}}}

    snapshot.handler("fato_tarefas")(payload)

    assert snapshot.tasks["101"].status == "Done"


def test_last_event_wins_and_unknown_tables_are_ignored(fake_db):
    snapshot = Snapshot.load(fake_db)
    for name in ("first", "second"):
        snapshot.apply_change("dim_projetos", {"eventType": "UPDATE",
                                               "new": {"ID_Projeto": 10, "NomeProjeto": name, "ID_Cliente": 1}})
    snapshot.apply_change("audit_log", {"eventType": "INSERT", "new": {"id": 1}})

    assert snapshot.projects["10"].name == "second"


def test_load_attaches_collaborators(fake_db):
    fake_db.tables["tarefa_colaboradores"] = [{"id_tarefa": 101, "id_colaborador": 2}]
    assert Snapshot.load(fake_db).tasks["101"].collaborator_ids == ["2"]


def test_collaborator_links_follow_change_events(fake_db):
    snapshot = Snapshot.load(fake_db)

    snapshot.apply_change("tarefa_colaboradores", {"eventType": "INSERT", "new": {"id_tarefa": 100, "id_colaborador": 2}})
    assert snapshot.tasks["100"].collaborator_ids == ["2"]

    # a task row update carries no collaborators and must not drop them
    snapshot.apply_change("fato_tarefas", {"eventType": "UPDATE", "new": {
        "id_tarefa_novo": 100, "Afazer": "Login page", "ID_Projeto": 10, "StatusTarefa": "Revisão"}})
    assert snapshot.tasks["100"].status == "Review"
    assert snapshot.tasks["100"].collaborator_ids == ["2"]

    snapshot.apply_change("tarefa_colaboradores", {"eventType": "DELETE", "new": {},
                                                   "old": {"id_tarefa": 100, "id_colaborador": 2}})
    assert snapshot.tasks["100"].collaborator_ids == []


def test_membership_change_events(fake_db):
    snapshot = Snapshot.load(fake_db)

    snapshot.apply_change("project_members", {"eventType": "INSERT", "new": {
        "id_projeto": 10, "id_colaborador": 2, "allocation_percentage": 25}})
    snapshot.apply_change("project_members", {"eventType": "UPDATE", "new": {
        "id_projeto": 10, "id_colaborador": 1, "allocation_percentage": 80}})
    assert {(m.user_id, m.allocation_percentage) for m in snapshot.members} == {("1", 80), ("2", 25)}

    snapshot.apply_change("project_members", {"eventType": "DELETE", "old": {"id_projeto": 10, "id_colaborador": 2}})
    assert [m.user_id for m in snapshot.members] == ["1"]
