from auth import hash_password, verify_password


def test_hash_is_sha256_hex():
    assert hash_password("secret") == "2bb80d537b1da3e38bd30361aa855686bde0eacd7162fef6a25fe97bf527a25b"
    assert verify_password("secret", hash_password("secret"))
    assert not verify_password("other", hash_password("secret"))


def test_first_access_requires_password(client):
    response = client.post("/auth/login", json={"email": "ana@example.com"})
    assert response.status_code == 200
    assert response.json()["status"] == "set_password_required"


def test_unknown_email(client):
    response = client.post("/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert response.status_code == 404


def test_set_password_then_login(client, fake_db):
    response = client.post("/auth/set-password", json={
        "email": " ANA@example.com ", "new_password": "hunter22", "confirm_password": "hunter22"})
    assert response.status_code == 200
    assert fake_db.tables["user_credentials"][0]["colaborador_id"] == 1

    ok = client.post("/auth/login", json={"email": "ana@example.com", "password": "hunter22"})
    assert ok.status_code == 200
    assert ok.json()["user"]["name"] == "Ana Lima"

    wrong = client.post("/auth/login", json={"email": "ana@example.com", "password": "nope"})
    assert wrong.status_code == 401


def test_set_password_validation(client):
    mismatch = client.post("/auth/set-password", json={
        "email": "bruno@example.com", "new_password": "abcdef", "confirm_password": "abcdeg"})
    assert mismatch.status_code == 400

    short = client.post("/auth/set-password", json={
        "email": "bruno@example.com", "new_password": "abc", "confirm_password": "abc"})
    assert short.status_code == 400
