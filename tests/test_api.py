import pytest

from config import get_config
from database import set_store


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email, name="Asha R", password="fence123"):
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()


@pytest.fixture()
def admin_token(client):
    res = client.post("/auth/admin/register", json={"name": "Owner", "email": "owner@gmail.com", "password": "fence123"})
    assert res.status_code == 200, res.text
    return res.json()["token"]


@pytest.fixture()
def seeded_client(client, admin_token):
    assert client.post("/admin/seed", headers=auth(admin_token)).status_code == 200
    return client


def test_root(client):
    assert client.get("/").json() == {"message": "Fencing Portal API running"}


def test_register_and_me(client):
    body = register(client, "asha.r@gmail.com")
    assert body["redirect_to"] == "/customer/dashboard"
    me = client.get("/auth/me", headers=auth(body["token"])).json()
    assert me["email"] == "asha.r@gmail.com"
    assert me["role"] == "Customer"


def test_token_in_query_string(client):
    token = register(client, "asha.r@gmail.com")["token"]
    assert client.get(f"/auth/me?token={token}").status_code == 200


def test_login_failure_message(client):
    register(client, "asha.r@gmail.com")
    res = client.post("/auth/login", json={"email": "asha.r@gmail.com", "password": "nope-nope"})
    assert res.status_code == 401
    assert res.json() == {"detail": "Invalid email or password", "code": "wrong-password"}


def test_admin_self_registration_closes_after_first_admin(client, admin_token):
    res = client.post("/auth/admin/register", json={"name": "Intruder", "email": "intruder@gmail.com", "password": "fence123"})
    assert res.status_code == 403
    res = client.post("/auth/admin/register", headers=auth(admin_token),
                      json={"name": "Partner", "email": "partner@gmail.com", "password": "fence123"})
    assert res.json()["redirect_to"] == "/admin/dashboard"


def test_dashboard_redirects(client, admin_token):
    customer = register(client, "asha.r@gmail.com")["token"]

    res = client.get("/admin/dashboard", follow_redirects=False)
    assert res.status_code == 307
    assert res.headers["location"] == "/signin"

    res = client.get("/admin/dashboard", headers=auth(customer), follow_redirects=False)
    assert res.headers["location"] == "/customer/dashboard"

    res = client.get("/customer/dashboard", headers=auth(admin_token), follow_redirects=False)
    assert res.headers["location"] == "/admin/dashboard"

    assert client.get("/admin/dashboard", headers=auth(admin_token)).status_code == 200
    assert client.get("/customer/dashboard", headers=auth(customer)).json()["quotes"]["total"] == 0


def test_navigation_guard(client):
    token = register(client, "asha.r@gmail.com")["token"]
    assert client.get("/navigation/guard?area=admin").json() == {"allowed": False, "redirect_to": "/signin"}
    assert client.get("/navigation/guard?area=customer", headers=auth(token)).json()["allowed"] is True


def test_estimate_endpoint(seeded_client):
    res = seeded_client.post("/estimates", json={"product_id": "prod-002", "length": "50", "width": 30, "height": 8})
    assert res.status_code == 200
    body = res.json()
    assert body["area"] == 1280
    assert body["grand_total"] == 114800

    res = seeded_client.post("/estimates", json={"product_id": "prod-002", "length": 50, "width": 30})
    assert res.status_code == 400
    assert res.json()["detail"] == "Please fill in all fields"


def test_quote_lifecycle_over_http(seeded_client, admin_token):
    client = seeded_client
    customer = register(client, "asha.r@gmail.com")["token"]

    res = client.post("/quotes", headers=auth(customer),
                      json={"product_id": "prod-001", "length": 10, "width": 10, "height": 6, "notes": "side gate"})
    assert res.status_code == 201, res.text
    quote = res.json()
    assert quote["status"] == "Pending"
    assert quote["cost_breakdown"]["grand_total"] == 27700

    assert client.get("/quotes/unread-count", headers=auth(admin_token)).json() == {"unread": 1}
    assert [q["id"] for q in client.get("/quotes", headers=auth(customer)).json()] == [quote["id"]]

    res = client.get(f"/quotes/{quote['id']}/bill", headers=auth(customer))
    assert res.status_code == 409
    assert res.json() == {"detail": "Proposal is still under review", "code": "bill-unavailable"}

    res = client.post(f"/quotes/{quote['id']}/status", headers=auth(customer), json={"status": "Approved"})
    assert res.status_code == 403

    res = client.post(f"/quotes/{quote['id']}/status", headers=auth(admin_token), json={"status": "Approved"})
    assert res.json()["status"] == "Approved"

    res = client.post(f"/quotes/{quote['id']}/status", headers=auth(admin_token), json={"status": "Rejected"})
    assert res.status_code == 409
    assert res.json()["code"] == "invalid-transition"

    bill = client.get(f"/quotes/{quote['id']}/bill", headers=auth(customer))
    assert bill.status_code == 200
    assert "Twenty Seven Thousand Seven Hundred Rupees Only" in bill.text


def test_zero_valuation_over_http(client, store, admin_token):
    store.upsert("quotes", "quote-zero", {"customer_name": "Walk-in", "status": "Pending", "totalCost": 0})
    res = client.post("/quotes/quote-zero/status", headers=auth(admin_token), json={"status": "Approved"})
    assert res.status_code == 409
    assert res.json() == {
        "detail": "Cannot approve a quote with a zero valuation. Update the cost first.",
        "code": "zero-valuation",
    }
    assert store.read("quotes", "quote-zero")["status"] == "Pending"


def test_admin_edits_quote(seeded_client, admin_token):
    res = seeded_client.patch("/quotes/quote-001", headers=auth(admin_token), json={"area": "120", "notes": "revised"})
    assert res.status_code == 200
    assert res.json()["area"] == 120
    suggestion = seeded_client.get("/quotes/quote-001/recompute", headers=auth(admin_token)).json()
    assert suggestion["material_cost"] == 120 * 85


def test_customers_only_see_their_own_quotes(seeded_client):
    token = register(seeded_client, "asha.r@gmail.com")["token"]
    assert seeded_client.get("/quotes", headers=auth(token)).json() == []
    assert seeded_client.get("/quotes/quote-002", headers=auth(token)).status_code == 404


def test_projects_and_reports(seeded_client, admin_token):
    client = seeded_client
    res = client.post("/projects", headers=auth(admin_token), json={"name": "PR-004", "quote_id": "quote-003", "status": "In Progress", "progress": 20})
    assert res.status_code == 201, res.text
    project_id = res.json()["id"]

    res = client.put(f"/projects/{project_id}", headers=auth(admin_token), json={"progress": 100})
    assert res.json()["status"] == "Completed"

    report = client.get("/reports", headers=auth(admin_token)).json()
    assert report["total_revenue"] == 295500
    assert report["completed_projects"] == 2

    export = client.get("/reports/export", headers=auth(admin_token))
    assert export.headers["content-type"].startswith("text/csv")
    assert export.text.splitlines()[0] == "ID,Date,Customer,Status,Amount"


def test_settings_defaults_and_update(client, admin_token):
    settings = client.get("/settings", headers=auth(admin_token)).json()
    assert settings["theme"] == "dark"
    assert settings["system"]["currency"] == "INR"
    settings["theme"] = "light"
    assert client.put("/settings", headers=auth(admin_token), json=settings).status_code == 200
    assert client.get("/settings", headers=auth(admin_token)).json()["theme"] == "light"


def test_admin_creates_user_without_taking_their_session(client, admin_token):
    res = client.post("/users", headers=auth(admin_token),
                      json={"name": "Vikram S", "email": "vikram.s@gmail.com", "password": "fence123"})
    assert res.status_code == 201
    assert client.get("/auth/me", headers=auth(admin_token)).json()["email"] == "owner@gmail.com"
    assert [c["email"] for c in client.get("/customers", headers=auth(admin_token)).json()] == ["vikram.s@gmail.com"]


def test_unreachable_database(client, broken_store):
    set_store(broken_store)
    res = client.post("/auth/login", json={"email": "asha.r@gmail.com", "password": "fence123"})
    assert res.status_code == 503
    assert res.json()["code"] == "network-failure"
    assert client.get("/products").status_code == 503


@pytest.fixture()
def mailbox(monkeypatch, outbox):
    monkeypatch.setattr(get_config(), "RESET_NOTIFIER", lambda email, token: outbox.append((email, token)))
    return outbox


def test_password_reset_over_http(client, mailbox):
    register(client, "asha.r@gmail.com")
    assert client.post("/auth/password-reset", json={"email": "asha.r@gmail.com"}).json() == {"ok": True}
    [(email, token)] = mailbox
    assert email == "asha.r@gmail.com"

    res = client.post("/auth/password-reset/confirm", json={"token": token, "new_password": "newfence1"})
    assert res.status_code == 200
    assert client.post("/auth/login", json={"email": "asha.r@gmail.com", "password": "fence123"}).status_code == 401
    assert client.post("/auth/login", json={"email": "asha.r@gmail.com", "password": "newfence1"}).status_code == 200

    res = client.post("/auth/password-reset/confirm", json={"token": token, "new_password": "again123"})
    assert res.status_code == 400
    assert res.json()["code"] == "invalid-reset-token"


def test_non_finite_edits_keep_quote_lists_serializable(seeded_client, admin_token):
    res = seeded_client.patch("/quotes/quote-001", headers=auth(admin_token), json={"area": "inf", "grand_total": "nan"})
    assert res.status_code == 200
    assert res.json()["area"] == 0
    assert res.json()["cost_breakdown"]["grand_total"] == 0
    assert seeded_client.get("/quotes", headers=auth(admin_token)).status_code == 200
    res = seeded_client.post("/quotes/quote-001/status", headers=auth(admin_token), json={"status": "Approved"})
    assert res.json()["code"] == "zero-valuation"


def test_admin_records_manual_quote(client, admin_token):
    body = {"customer_name": "Ravi Kumar", "customer_email": "ravi.k@gmail.com", "grand_total": "45000", "description": "Farm boundary"}
    customer = register(client, "asha.r@gmail.com")["token"]
    assert client.post("/admin/quotes", headers=auth(customer), json=body).status_code == 403

    res = client.post("/admin/quotes", headers=auth(admin_token), json=body)
    assert res.status_code == 201, res.text
    assert res.json()["valuation"] == 45000
    assert [q["customer_name"] for q in client.get("/quotes", headers=auth(admin_token)).json()] == ["Ravi Kumar"]
    assert client.get("/quotes/unread-count", headers=auth(admin_token)).json() == {"unread": 0}
