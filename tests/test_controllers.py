"""End-to-end request flows through the registered controllers."""

from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash

from app import boot

CSP = (
    "default-src 'none'; connect-src 'self' http://localhost:3000; "
    "style-src 'self' 'unsafe-inline'; img-src 'self' https://image.shutterstock.com data:;"
)


def _seed_user(fake_db, email="alice@example.com", password="wonderland") -> None:
    fake_db["users"].insert_one({
        "username": "alice",
        "email": email,
        "password": generate_password_hash(password, method="pbkdf2:sha256"),
    })


def test_public_pages_render(degraded_app) -> None:
    client = degraded_app.test_client()

    for path, marker in (("/", b"Welcome"), ("/login", b"<form"), ("/register", b"<form")):
        response = client.get(path)
        assert response.status_code == 200
        assert marker in response.data


def test_dashboard_requires_authentication(degraded_app) -> None:
    response = degraded_app.test_client().get("/dashboard")

    assert response.status_code == 302
    assert "/login" in response.headers["Location"]


def test_register_then_login_reaches_dashboard(connected_app, connected) -> None:
    client = connected_app.test_client()

    response = client.post("/register", data={
        "username": "alice", "email": "alice@example.com", "password": "wonderland",
    })
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/login")

    stored = connected["users"].find_one({"email": "alice@example.com"})
    assert stored["password"] != "wonderland"
    assert check_password_hash(stored["password"], "wonderland")

    response = client.post("/login", data={"email": "alice@example.com", "password": "wonderland"})
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/dashboard")

    dashboard = client.get("/dashboard")
    assert dashboard.status_code == 200
    assert b"Hello, alice." in dashboard.data


def test_duplicate_registration_is_refused(connected_app, connected) -> None:
    _seed_user(connected)
    client = connected_app.test_client()

    response = client.post("/register", data={
        "username": "other", "email": "alice@example.com", "password": "pw",
    }, follow_redirects=True)

    assert b"already exists" in response.data
    assert len(connected["users"].docs) == 1


def test_register_requires_all_fields(connected_app, connected) -> None:
    response = connected_app.test_client().post(
        "/register", data={"username": "alice"}, follow_redirects=True
    )

    assert b"all required" in response.data
    assert connected["users"].docs == {}


def test_wrong_password_is_rejected(connected_app, connected) -> None:
    _seed_user(connected)
    client = connected_app.test_client()

    response = client.post("/login", data={
        "email": "alice@example.com", "password": "nope",
    }, follow_redirects=True)

    assert b"Incorrect password" in response.data
    assert client.get("/dashboard").status_code == 302


def test_unknown_email_is_rejected(connected_app, connected) -> None:
    response = connected_app.test_client().post("/login", data={
        "email": "bob@example.com", "password": "pw",
    }, follow_redirects=True)

    assert b"No account found" in response.data


def test_logout_ends_the_login(connected_app, connected) -> None:
    _seed_user(connected)
    client = connected_app.test_client()
    client.post("/login", data={"email": "alice@example.com", "password": "wonderland"})

    response = client.post("/logout")

    assert response.status_code == 302
    assert client.get("/dashboard").status_code == 302
    assert all("isAuth" not in doc["session"] for doc in connected["mySessions"].docs.values())


def test_degraded_mode_reports_missing_database(degraded_app) -> None:
    client = degraded_app.test_client()

    login = client.post("/login", data={"email": "a@b.c", "password": "pw"}, follow_redirects=True)
    register = client.post("/register", data={
        "username": "a", "email": "a@b.c", "password": "pw",
    }, follow_redirects=True)

    assert b"unavailable" in login.data
    assert b"unavailable" in register.data


def test_test_session_grants_dashboard_without_user(degraded_app) -> None:
    client = degraded_app.test_client()
    client.get("/test-session")

    response = client.get("/dashboard")

    assert response.status_code == 200
    assert b"Hello, guest." in response.data


def test_development_sets_content_security_policy(degraded_app) -> None:
    response = degraded_app.test_client().get("/")

    assert response.headers["Content-Security-Policy"] == CSP


def test_production_omits_content_security_policy(make_config, connected) -> None:
    app, _ = boot(make_config(MONGO_URI="mongodb://localhost/app", APP_ENV="production"))

    response = app.test_client().get("/")

    assert "Content-Security-Policy" not in response.headers
