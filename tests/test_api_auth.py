from __future__ import annotations

from tests.conftest import create_user


def _register(client, email, username):
    return client.post("/auth/register", json={"email": email, "password": "segredo123", "username": username,
                                               "display_name": username.title()})


def _login(client, identifier, password="segredo123"):
    return client.post("/auth/login", json={"identifier": identifier, "password": password})


def _refresh_cookie(resp) -> str:
    # the cookie is Secure outside development, so the test client will not resend it over http
    header = resp.headers["set-cookie"]
    assert "httponly" in header.lower()
    return header.split(";", 1)[0].split("=", 1)[1]


def test_first_user_owns_the_restaurant(client) -> None:
    first = _register(client, "dona@restaurante.com.br", "dona")
    second = _register(client, "joao@restaurante.com.br", "joao")
    assert first.status_code == 200
    assert first.json()["papel"] == "owner"
    assert second.json()["papel"] == "waiter"


def test_duplicate_and_invalid_registration(client) -> None:
    _register(client, "dona@restaurante.com.br", "dona")
    dup = _register(client, "dona@restaurante.com.br", "outra")
    assert dup.status_code == 409
    assert dup.json()["error"] == "conflict"
    assert _register(client, "x@restaurante.com.br", "Maiuscula").status_code == 422
    short = client.post("/auth/register", json={"email": "y@restaurante.com.br", "password": "123"})
    assert short.status_code == 422


def test_login_by_email_or_username(client) -> None:
    _register(client, "dona@restaurante.com.br", "dona")
    for identifier in ("dona@restaurante.com.br", "dona"):
        resp = _login(client, identifier)
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["username"] == "dona"
    assert _login(client, "dona", "errada").status_code == 400


def test_permissions_endpoint(client, auth_headers) -> None:
    body = client.get("/auth/me/permissions", headers=auth_headers("barman")).json()
    assert body["role"] == "barman"
    assert body["permissions"]["inventory"] == {"view": True, "create": False, "update": False, "delete": False}


def test_refresh_rotates_session(client) -> None:
    _register(client, "dona@restaurante.com.br", "dona")
    old = _refresh_cookie(_login(client, "dona"))

    client.cookies.set("refresh_token", old)
    resp = client.post("/auth/refresh")
    assert resp.status_code == 200
    new = _refresh_cookie(resp)
    assert new != old

    client.cookies.set("refresh_token", old)
    assert client.post("/auth/refresh").status_code == 401
    client.cookies.set("refresh_token", new)
    assert client.post("/auth/refresh").status_code == 200


def test_access_token_is_not_a_refresh_token(client) -> None:
    _register(client, "dona@restaurante.com.br", "dona")
    access = _login(client, "dona").json()["access_token"]
    client.cookies.set("refresh_token", access)
    assert client.post("/auth/refresh").status_code == 401


def test_deleted_user_is_locked_out(client, db_session, auth_headers) -> None:
    owner = auth_headers("owner")
    waiter = create_user(db_session, "waiter")
    assert _login(client, "waiter").status_code == 200

    assert client.delete(f"/users/{waiter.id}", headers=owner).status_code == 200
    assert _login(client, "waiter").status_code == 400
    listed = [u["username"] for u in client.get("/users", headers=owner).json()]
    assert "waiter" not in listed


def test_admin_cannot_grant_owner(client, db_session, auth_headers) -> None:
    admin = auth_headers("admin")
    waiter = create_user(db_session, "waiter")
    resp = client.put(f"/users/{waiter.id}/role", json={"papel": "owner"}, headers=admin)
    assert resp.status_code == 403
    resp = client.put(f"/users/{waiter.id}/role", json={"papel": "chef"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["papel"] == "chef"
