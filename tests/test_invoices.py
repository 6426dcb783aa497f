"""Invoices: numbering, totals, payments, void, PDF and email delivery."""
from datetime import date
from decimal import Decimal

from app.folio.db import db_session
from app.folio.modules.invoices import service
from app.folio.modules.invoices.models import Invoice
from app.folio.modules.invoices.service import calculate_due_date, calculate_totals

LINES = [
    {"description": "Hardcover", "quantity": 2, "unit_price": "10.00"},
    {"description": "Bookmark", "quantity": 1, "unit_price": "5.50", "item_code": "BM-1"},
]


def _customer(factory, email="orders@books.example"):
    return factory.contact("Bea", "Buyer", email=email, roles=["customer"])


def _create(client, customer_id, **overrides):
    payload = {
        "customer_id": customer_id,
        "tax_rate": "0.08",
        "shipping_cost": "4.00",
        "line_items": LINES,
    }
    payload.update(overrides)
    return client.post("/invoices/", json=payload)


def test_calculate_totals():
    lines = [
        {"quantity": 3, "unit_price": Decimal("19.99")},
        {"quantity": 1, "unit_price": Decimal("0.05")},
    ]
    totals = calculate_totals(lines, Decimal("0.0725"), Decimal("0"))
    assert totals == {
        "subtotal": Decimal("60.02"),
        "tax_amount": Decimal("4.35"),
        "total": Decimal("64.37"),
    }


def test_calculate_due_date():
    d = date(2026, 1, 31)
    assert calculate_due_date(d, "net_30") == date(2026, 3, 2)
    assert calculate_due_date(d, "net_60") == date(2026, 4, 1)
    assert calculate_due_date(d, "due_on_receipt") == d
    assert calculate_due_date(d, "custom", 15) == date(2026, 2, 15)


def test_create_invoice(login, factory):
    cid = _customer(factory)
    r = _create(login("finance@acme.test"), cid, invoice_date="2026-04-01")
    assert r.status_code == 201, r.get_json()
    inv = r.get_json()["data"]
    assert inv["invoice_number"] == f"INV-{date.today():%Y%m%d}-0001"
    assert inv["status"] == "draft"
    assert inv["subtotal"] == "25.50"
    assert inv["tax_amount"] == "2.04"
    assert inv["total"] == "31.54"
    assert inv["balance_due"] == "31.54"
    assert inv["due_date"] == "2026-05-01"
    assert inv["customer_name"] == "Bea Buyer"
    assert [ln["amount"] for ln in inv["line_items"]] == ["20.00", "5.50"]

    second = _create(login("finance@acme.test"), cid).get_json()["data"]
    assert second["invoice_number"].endswith("-0002")


def test_create_requires_customer_role(login, factory):
    author = factory.contact("Ann", "Author", roles=["author"])
    r = _create(login(), author)
    assert r.status_code == 400
    assert r.get_json()["error"] == "Selected contact is not a customer"


def test_create_requires_line_items(login, factory):
    r = _create(login(), _customer(factory), line_items=[])
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invoice must have at least one line item"


def test_line_item_errors_are_collected(login, factory):
    r = _create(
        login(),
        _customer(factory),
        line_items=[{"description": "", "quantity": 0, "unit_price": "-1"}],
    )
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "Line 1: description is required" in errors
    assert "Line 1: quantity must be greater than 0" in errors
    assert "Line 1: unit price cannot be negative" in errors


def test_fractional_quantity(login, factory):
    lines = [
        {"description": "Paper (reams)", "quantity": 2.5, "unit_price": "10.00"},
        {"description": "Binding tape (m)", "quantity": "0.125", "unit_price": "8.00"},
    ]
    r = _create(login("finance@acme.test"), _customer(factory), line_items=lines, tax_rate="0", shipping_cost="0")
    assert r.status_code == 201, r.get_json()
    inv = r.get_json()["data"]
    assert [ln["quantity"] for ln in inv["line_items"]] == ["2.5", "0.125"]
    assert [ln["amount"] for ln in inv["line_items"]] == ["25.00", "1.00"]
    assert inv["subtotal"] == "26.00"


def test_quantity_must_be_positive_number(login, factory):
    client = login("finance@acme.test")
    cid = _customer(factory)
    r = _create(client, cid, line_items=[{"description": "Paper", "quantity": -0.5, "unit_price": "1"}])
    assert r.get_json()["error"] == "Line 1: quantity must be greater than 0"
    r = _create(client, cid, line_items=[{"description": "Paper", "quantity": "lots", "unit_price": "1"}])
    assert r.status_code == 400
    assert r.get_json()["error"] == "Line 1: quantity must be a number"


def test_editor_cannot_see_invoices(login):
    r = login("editor@acme.test").get("/invoices/")
    assert r.status_code == 403


def test_update_draft_only(login, factory):
    client = login("finance@acme.test")
    cid = _customer(factory)
    inv = _create(client, cid).get_json()["data"]

    r = client.put(
        f"/invoices/{inv['id']}",
        json={"line_items": [{"description": "Box set", "quantity": 1, "unit_price": "100"}], "payment_terms": "due_on_receipt"},
    )
    assert r.status_code == 200, r.get_json()
    updated = r.get_json()["data"]
    assert updated["total"] == "100.00"
    assert updated["due_date"] == updated["invoice_date"]
    assert len(updated["line_items"]) == 1

    client.post(f"/invoices/{inv['id']}/send")
    r = client.put(f"/invoices/{inv['id']}", json={"line_items": LINES})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Only draft invoices can be edited"


def test_send_invoice(login, factory, outbox):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]

    r = client.post(f"/invoices/{inv['id']}/send")
    assert r.status_code == 200, r.get_json()
    body = r.get_json()
    assert body["data"]["status"] == "sent"
    assert body["data"]["sent_at"] is not None
    assert body["message_id"]

    [msg] = outbox
    assert msg["To"] == "orders@books.example"
    assert msg["Subject"] == f"Invoice {inv['invoice_number']} from Acme Press"
    [attachment] = list(msg.iter_attachments())
    assert attachment.get_content_type() == "application/pdf"
    assert attachment.get_content().startswith(b"%PDF")

    detail = client.get(f"/invoices/{inv['id']}").get_json()["data"]
    assert detail["has_pdf"] is True


def test_send_without_customer_email(login, factory, outbox):
    client = login("finance@acme.test")
    cid = factory.contact("No", "Mail", roles=["customer"])
    inv = _create(client, cid).get_json()["data"]
    r = client.post(f"/invoices/{inv['id']}/send")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Customer No Mail has no email address"
    assert outbox == []


def test_send_failure_keeps_draft(login, factory, outbox):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]
    outbox.fail = True

    r = client.post(f"/invoices/{inv['id']}/send")
    assert r.status_code == 502
    assert r.get_json()["error"].startswith("Email delivery failed")
    assert client.get(f"/invoices/{inv['id']}").get_json()["data"]["status"] == "draft"


def test_send_status_is_written_before_mailing(login, factory, monkeypatch):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]
    seen = []

    def fake_send(to, subject, body, **kwargs):
        seen.append(db_session().query(Invoice.status).filter(Invoice.id == inv["id"]).scalar())
        return True, "<queued>"

    monkeypatch.setattr(service, "send_email", fake_send)
    r = client.post(f"/invoices/{inv['id']}/send")
    assert r.status_code == 200
    assert seen == ["sent"]


def test_resend(login, factory, outbox):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]

    r = client.post(f"/invoices/{inv['id']}/resend")
    assert r.status_code == 400

    client.post(f"/invoices/{inv['id']}/send")
    r = client.post(f"/invoices/{inv['id']}/resend")
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "sent"
    assert outbox[-1]["Subject"].startswith("Reminder: Invoice")


def test_payments(login, factory):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]
    url = f"/invoices/{inv['id']}/payments"

    r = client.post(url, json={"amount": "10", "payment_method": "check"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot record payment for draft invoice"

    client.post(f"/invoices/{inv['id']}/send")

    r = client.post(url, json={"amount": "0", "payment_method": "check"})
    assert r.get_json()["error"] == "Payment amount must be greater than 0"
    r = client.post(url, json={"amount": "5", "payment_method": "barter"})
    assert r.status_code == 400

    r = client.post(url, json={"amount": "10", "payment_method": "check", "reference_number": "1001"})
    assert r.status_code == 201, r.get_json()
    body = r.get_json()
    assert body["data"]["amount"] == "10.00"
    assert body["invoice"]["status"] == "partially_paid"
    assert body["invoice"]["balance_due"] == "21.54"

    # overpayment is accepted and the balance floors at zero
    r = client.post(url, json={"amount": "25", "payment_method": "ach"})
    assert r.get_json()["invoice"]["status"] == "paid"
    assert r.get_json()["invoice"]["balance_due"] == "0.00"
    assert r.get_json()["invoice"]["amount_paid"] == "35.00"

    payments = client.get(f"/invoices/{inv['id']}").get_json()["data"]["payments"]
    assert len(payments) == 2


def test_void(login, factory):
    client = login("finance@acme.test")
    cid = _customer(factory)
    inv = _create(client, cid).get_json()["data"]

    r = client.post(f"/invoices/{inv['id']}/void", json={"reason": "Duplicate order"})
    assert r.get_json()["data"]["status"] == "void"
    r = client.post(f"/invoices/{inv['id']}/send")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot send a voided invoice"

    paid = _create(client, cid).get_json()["data"]
    client.post(f"/invoices/{paid['id']}/send")
    client.post(f"/invoices/{paid['id']}/payments", json={"amount": "31.54", "payment_method": "wire"})
    r = client.post(f"/invoices/{paid['id']}/void")
    assert r.status_code == 400
    assert r.get_json()["error"] == "Cannot void a paid invoice"


def test_mark_overdue(login, factory):
    client = login("finance@acme.test")
    cid = _customer(factory)
    late = _create(client, cid, invoice_date="2020-01-01").get_json()["data"]
    current = _create(client, cid).get_json()["data"]
    draft = _create(client, cid, invoice_date="2020-01-01").get_json()["data"]
    for inv in (late, current):
        client.post(f"/invoices/{inv['id']}/send")

    assert login("editor@acme.test").post("/invoices/mark-overdue").status_code == 403

    client = login("finance@acme.test")
    r = client.post("/invoices/mark-overdue")
    assert r.status_code == 200
    assert [inv["id"] for inv in r.get_json()["data"]] == [late["id"]]
    assert client.get(f"/invoices/{draft['id']}").get_json()["data"]["status"] == "draft"

    overdue = client.get("/invoices/?status=overdue").get_json()["data"]
    assert [inv["id"] for inv in overdue] == [late["id"]]


def test_pdf_download(login, factory):
    client = login("finance@acme.test")
    inv = _create(client, _customer(factory)).get_json()["data"]
    r = client.get(f"/invoices/{inv['id']}/pdf")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")
    assert inv["invoice_number"] in r.headers["Content-Disposition"]


def test_list_filters(login, factory):
    client = login("finance@acme.test")
    first = _customer(factory)
    second = _customer(factory, email="shop@books.example")
    _create(client, first)
    _create(client, second)

    rows = client.get(f"/invoices/?customer_id={second}").get_json()["data"]
    assert len(rows) == 1 and rows[0]["customer_id"] == second
    assert client.get("/invoices/?status=lost").status_code == 400
