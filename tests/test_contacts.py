"""Tests for the contacts module: CRUD, roles and role-specific data."""
from app.folio.modules.contacts.validation import validate_payment_info, validate_role_data


def _create(client, **payload):
    payload.setdefault("first_name", "Jane")
    payload.setdefault("last_name", "Austen")
    return client.post("/contacts/", json=payload)


def test_create_contact_with_roles(login):
    client = login()
    r = _create(
        client,
        email="Jane@Example.com",
        roles=[{"role": "author", "role_specific_data": {"pen_name": "A Lady"}}, {"role": "vendor"}],
    )
    assert r.status_code == 201, r.get_json()
    data = r.get_json()["data"]
    assert data["email"] == "jane@example.com"
    assert data["status"] == "active"
    assert data["country"] == "USA"
    assert sorted(role["role"] for role in data["roles"]) == ["author", "vendor"]
    author = next(role for role in data["roles"] if role["role"] == "author")
    assert author["role_specific_data"] == {"pen_name": "A Lady"}


def test_create_contact_requires_names(login):
    client = login()
    r = client.post("/contacts/", json={"email": "x@example.com"})
    assert r.status_code == 400
    body = r.get_json()
    assert body["error"] == "First name is required"
    assert "Last name is required" in body["errors"]


def test_create_contact_rejects_bad_email(login):
    r = _create(login(), email="not-an-email")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid email format"


def test_non_string_fields_rejected(login):
    client = login()
    r = _create(client, first_name=123, last_name="X")
    assert r.status_code == 400
    assert r.get_json()["error"] == "first_name must be a string"

    r = _create(client, email=["jane@example.com"], notes={"a": 1})
    assert r.status_code == 400
    assert r.get_json()["errors"] == ["email must be a string", "notes must be a string"]


def test_duplicate_email_within_tenant(login):
    client = login()
    assert _create(client, email="dup@example.com").status_code == 201
    r = _create(client, first_name="Other", email="DUP@example.com")
    assert r.status_code == 409
    assert r.get_json()["error"] == "A contact with this email already exists"


def test_same_email_allowed_in_other_tenant(login, factory):
    factory.contact(email="shared@example.com", tenant="other")
    r = _create(login(), email="shared@example.com")
    assert r.status_code == 201


def test_update_contact(login, factory):
    cid = factory.contact("Mary", "Shelley")
    client = login("editor@acme.test")
    r = client.patch(f"/contacts/{cid}", json={"city": "Bath", "phone": "555-0100"})
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["city"] == "Bath"
    assert data["first_name"] == "Mary"


def test_update_contact_blank_name_rejected(login, factory):
    cid = factory.contact()
    r = login().patch(f"/contacts/{cid}", json={"first_name": "  "})
    assert r.status_code == 400
    assert r.get_json()["error"] == "First name is required"


def test_editor_cannot_assign_customer_role(login, factory):
    client = login("editor@acme.test")
    r = _create(client, roles=[{"role": "customer"}, {"role": "author"}])
    assert r.status_code == 201
    assert [role["role"] for role in r.get_json()["data"]["roles"]] == ["author"]

    cid = factory.contact("Bob", "Buyer")
    r = client.post(f"/contacts/{cid}/roles", json={"role": "customer"})
    assert r.status_code == 403
    assert r.get_json()["error"] == "You don't have permission to assign this role"


def test_assign_role_twice_conflicts(login, factory):
    cid = factory.contact(roles=["vendor"])
    r = login().post(f"/contacts/{cid}/roles", json={"role": "vendor"})
    assert r.status_code == 409
    assert r.get_json()["error"] == "This role is already assigned to the contact"


def test_assign_role_validates_data(login, factory):
    cid = factory.contact()
    r = login().post(f"/contacts/{cid}/roles", json={"role": "vendor", "role_specific_data": {"lead_time_days": -3}})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Lead time must be a non-negative whole number of days"


def test_update_and_remove_role(login, factory):
    cid = factory.contact(roles=["distributor"])
    client = login()
    r = client.put(f"/contacts/{cid}/roles/distributor", json={"role_specific_data": {"territory": "EMEA", "commission_rate": 0.15}})
    assert r.status_code == 200
    assert r.get_json()["data"]["role_specific_data"]["territory"] == "EMEA"

    r = client.delete(f"/contacts/{cid}/roles/distributor")
    assert r.status_code == 200
    assert r.get_json()["data"]["roles"] == []

    r = client.put(f"/contacts/{cid}/roles/distributor", json={"role_specific_data": {}})
    assert r.status_code == 404


def test_list_filters(login, factory):
    factory.contact("Ann", "Author", roles=["author"])
    factory.contact("Val", "Vendor", roles=["vendor"], email="val@print.example")
    client = login()

    names = [c["last_name"] for c in client.get("/contacts/?role=vendor").get_json()["data"]]
    assert names == ["Vendor"]

    names = [c["last_name"] for c in client.get("/contacts/?search=PRINT").get_json()["data"]]
    assert names == ["Vendor"]

    r = client.get("/contacts/?role=publisher")
    assert r.status_code == 400


def test_deactivate_requires_permission(login, factory):
    cid = factory.contact("Gone", "Soon")
    r = login("editor@acme.test").post(f"/contacts/{cid}/deactivate")
    assert r.status_code == 403

    client = login()
    r = client.post(f"/contacts/{cid}/deactivate")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "inactive"

    assert client.get("/contacts/").get_json()["data"] == []
    listed = client.get("/contacts/?include_inactive=1").get_json()["data"]
    assert [c["id"] for c in listed] == [cid]

    r = client.post(f"/contacts/{cid}/reactivate")
    assert r.get_json()["data"]["status"] == "active"


def test_vendor_options(login, factory):
    factory.contact(
        "Pat",
        "Printer",
        email="pat@print.example",
        roles=[{"role": "vendor", "role_specific_data": {"vendor_code": "PP-01", "lead_time_days": 10}}],
    )
    factory.contact("Not", "Vendor", roles=["author"])
    data = login().get("/contacts/vendors").get_json()["data"]
    assert data == [
        {"id": data[0]["id"], "name": "Pat Printer", "email": "pat@print.example", "vendor_code": "PP-01", "lead_time_days": 10}
    ]


def test_payment_info_rules():
    assert validate_payment_info({"method": "check", "payee_name": "J. Austen"}) == []
    errors = validate_payment_info({"method": "direct_deposit", "account_type": "brokerage", "routing_number": "12"})
    assert "Bank name is required" in errors
    assert "Account type must be checking or savings" in errors
    assert "Routing number must be 9 digits" in errors
    assert validate_payment_info({"method": "wire_transfer", "bank_name": "B", "swift_code": "abc"}) == [
        "SWIFT code must be 8-11 characters"
    ]
    assert validate_payment_info({"method": "cash"})[0].startswith("Invalid payment method")
    assert validate_payment_info({"method": "wire_transfer", "bank_name": 7}) == ["bank_name must be a string"]


def test_role_data_rules():
    assert validate_role_data("author", {"website": "ftp://nope"}) == ["Website must be a valid URL"]
    assert validate_role_data("distributor", {"commission_rate": 1.5}) == ["Commission rate must be between 0 and 1"]
    assert validate_role_data("customer", {"credit_limit": -1}) == ["Credit limit must be a non-negative number"]
    assert validate_role_data("customer", None) == []
    assert validate_role_data("reviewer", {})[0].startswith("Invalid role")
