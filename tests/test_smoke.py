def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["ok"] is True


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_anonymous(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.get_json()["authenticated"] is False


def test_protected_route_requires_auth(client):
    r = client.get("/contacts/")
    assert r.status_code == 401
    assert r.get_json()["error"] == "Authentication required"


def test_login_bad_password(client):
    r = client.post("/auth/login", json={"email": "owner@acme.test", "password": "nope"})
    assert r.status_code == 401
    assert r.get_json()["error"] == "Invalid credentials."


def test_login_and_me(login):
    client = login("finance@acme.test")
    r = client.get("/auth/me")
    assert r.status_code == 200
    body = r.get_json()
    assert body["user"]["email"] == "finance@acme.test"
    assert body["user"]["roles"] == ["finance"]
    assert "invoices.manage" in body["permissions"]
    assert "production.view" not in body["permissions"]


def test_missing_permission_is_403(login):
    client = login("editor@acme.test")
    r = client.get("/invoices/")
    assert r.status_code == 403
    body = r.get_json()
    assert body["success"] is False
    assert body["missing_permission"] == "invoices.view"


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": "owner@acme.test", "password": "wrong"})
    r = client.post("/auth/login", json={"email": "owner@acme.test", "password": "wrong"})
    assert r.status_code == 429


def test_logout_clears_session(login):
    client = login()
    assert client.get("/contacts/").status_code == 200
    client.post("/auth/logout")
    assert client.get("/contacts/").status_code == 401


def test_csrf_enforced_when_enabled(app, login):
    client = login()
    app.config["CSRF_ENABLED"] = True

    r = client.post("/contacts/", json={"first_name": "Ada", "last_name": "Byron"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "CSRF token missing or invalid."

    token = client.get("/csrf-token").get_json()["csrf_token"]
    r = client.post("/contacts/", json={"first_name": "Ada", "last_name": "Byron"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 201
