"""
Invoices service layer.

Totals are always computed server-side from the line items:

    amount     = quantity * unit_price          (per line, cents)
    subtotal   = sum(amount)
    tax_amount = subtotal * tax_rate            (cents)
    total      = subtotal + tax_amount + shipping_cost
    balance    = total - amount_paid            (never below zero)
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.folio.audit import record_event
from app.folio.errors import DeliveryError, NotFound, ValidationError
from app.folio.mailer import send_email
from app.folio.modules.contacts.models import Contact
from app.folio.modules.contacts.validation import validate_address
from app.folio.modules.titles.models import Title
from app.folio.rbac import ensure_permission
from app.folio.storage import Storage, StorageError
from app.folio.utils import CENT, clean_str, iso, parse_date, parse_decimal, parse_optional_int, plain_number

from .models import Invoice, InvoiceLineItem, Payment
from .pdf import invoice_pdf_filename, render_invoice_pdf

if TYPE_CHECKING:
    from app.folio.models import User

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("draft", "sent", "paid", "partially_paid", "overdue", "void")
PAYMENT_TERMS = ("net_30", "net_60", "due_on_receipt", "custom")
PAYMENT_METHODS = ("check", "wire", "credit_card", "ach", "other")

PAYABLE_STATUSES = ("sent", "partially_paid", "overdue")
RESENDABLE_STATUSES = ("sent", "partially_paid", "paid", "overdue")
OVERDUE_CANDIDATES = ("sent", "partially_paid")

TAX_PLACES = Decimal("0.0001")
QUANTITY_PLACES = Decimal("0.001")
QUANTITY_LIMIT = Decimal("10000000")  # Numeric(10, 3)
NOTES_MAX = 2000
INVOICE_NOT_FOUND = "Invoice not found"
DUPLICATE_NUMBER = "An invoice with this number already exists. Please try again."


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ---------- Numbering / dates / arithmetic ----------
def generate_invoice_number(s: Session, tenant_id: int, *, today: date | None = None) -> str:
    """INV-YYYYMMDD-NNNN, NNNN one past today's highest number in the tenant."""
    prefix = f"INV-{(today or date.today()).strftime('%Y%m%d')}-"
    numbers = (
        s.query(Invoice.invoice_number)
        .filter(Invoice.tenant_id == tenant_id, Invoice.invoice_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        tail = number[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return f"{prefix}{highest + 1:04d}"


def calculate_due_date(invoice_date: date, payment_terms: str, custom_terms_days: int | None = None) -> date:
    if payment_terms == "net_30":
        return invoice_date + timedelta(days=30)
    if payment_terms == "net_60":
        return invoice_date + timedelta(days=60)
    if payment_terms == "custom":
        return invoice_date + timedelta(days=custom_terms_days or 0)
    return invoice_date


def calculate_totals(lines: list[dict], tax_rate: Decimal, shipping_cost: Decimal) -> dict[str, Decimal]:
    subtotal = sum((_cents(Decimal(str(ln["quantity"])) * ln["unit_price"]) for ln in lines), Decimal("0.00"))
    tax_amount = _cents(subtotal * tax_rate)
    total = _cents(subtotal + tax_amount + shipping_cost)
    return {"subtotal": _cents(subtotal), "tax_amount": tax_amount, "total": total}


# ---------- Validation ----------
def _clean_line_items(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Invoice must have at least one line item")
    errors: list[str] = []
    lines: list[dict] = []
    for i, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            errors.append(f"Line {i}: invalid line item")
            continue
        description = clean_str(item.get("description"))
        if not description:
            errors.append(f"Line {i}: description is required")
        item_code = clean_str(item.get("item_code"))
        if item_code and len(item_code) > 50:
            errors.append(f"Line {i}: item code is too long")
        try:
            quantity = parse_decimal(item.get("quantity"), field=f"Line {i}: quantity", default=Decimal("1"))
            unit_price = parse_decimal(item.get("unit_price"), field=f"Line {i}: unit price")
            line_tax = parse_decimal(item.get("tax_rate"), field=f"Line {i}: tax rate")
            title_id = parse_optional_int(item.get("title_id"), message=f"Line {i}: invalid title ID")
        except ValidationError as e:
            errors.extend(e.errors)
            continue
        if quantity <= 0:
            errors.append(f"Line {i}: quantity must be greater than 0")
        elif quantity >= QUANTITY_LIMIT:
            errors.append(f"Line {i}: quantity is too large")
        if unit_price is None:
            errors.append(f"Line {i}: unit price is required")
        elif unit_price < 0:
            errors.append(f"Line {i}: unit price cannot be negative")
        if line_tax is not None and not Decimal("0") <= line_tax <= Decimal("1"):
            errors.append(f"Line {i}: tax rate must be between 0 and 1")
        lines.append(
            {
                "line_number": i,
                "item_code": item_code,
                "description": description,
                "quantity": quantity.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP),
                "unit_price": _cents(unit_price) if unit_price is not None else None,
                "tax_rate": line_tax.quantize(TAX_PLACES) if line_tax is not None else None,
                "title_id": title_id,
            }
        )
    if errors:
        raise ValidationError(errors)
    return lines


def _clean_header(payload: dict) -> dict:
    """Validate the non-line fields. Raises ValidationError with every problem found."""
    errors: list[str] = []
    values: dict = {}

    terms = payload.get("payment_terms") or "net_30"
    if terms not in PAYMENT_TERMS:
        errors.append(f"Invalid payment terms. Must be one of: {', '.join(PAYMENT_TERMS)}")
    values["payment_terms"] = terms
    custom_days = None
    if terms == "custom":
        try:
            custom_days = int(payload.get("custom_terms_days"))
        except (TypeError, ValueError):
            custom_days = None
        if custom_days is None or custom_days < 1:
            errors.append("Custom payment terms require a number of days")
    values["custom_terms_days"] = custom_days

    try:
        values["invoice_date"] = parse_date(payload.get("invoice_date")) or date.today()
        values["due_date"] = parse_date(payload.get("due_date"))
        tax_rate = parse_decimal(payload.get("tax_rate"), field="Tax rate", default=Decimal("0"))
        shipping = parse_decimal(payload.get("shipping_cost"), field="Shipping cost", default=Decimal("0"))
    except ValidationError as e:
        raise ValidationError(errors + e.errors) from e
    if not Decimal("0") <= tax_rate <= Decimal("1"):
        errors.append("Tax rate must be between 0 and 1")
    if shipping < 0:
        errors.append("Shipping cost cannot be negative")
    values["tax_rate"] = tax_rate.quantize(TAX_PLACES)
    values["shipping_cost"] = _cents(shipping)
    if values["due_date"] and values["due_date"] < values["invoice_date"]:
        errors.append("Due date cannot be before the invoice date")

    validate_address(errors, payload.get("bill_to_address"), "Bill-to address")
    validate_address(errors, payload.get("ship_to_address"), "Ship-to address")
    values["bill_to_address"] = payload.get("bill_to_address") or None
    values["ship_to_address"] = payload.get("ship_to_address") or None

    for field, limit, label in (
        ("po_number", 100, "PO number"),
        ("shipping_method", 100, "Shipping method"),
        ("notes", NOTES_MAX, "Notes"),
        ("internal_notes", NOTES_MAX, "Internal notes"),
    ):
        value = clean_str(payload.get(field))
        if value and len(value) > limit:
            errors.append(f"{label} is too long")
        values[field] = value

    currency = (clean_str(payload.get("currency")) or "USD").upper()
    if len(currency) != 3:
        errors.append("Currency must be a 3-letter code")
    values["currency"] = currency

    if errors:
        raise ValidationError(errors)
    return values


def _customer(s: Session, tenant_id: int, customer_id) -> Contact:
    cid = parse_optional_int(customer_id, message="Invalid customer ID")
    if cid is None:
        raise ValidationError("Customer is required")
    customer = s.query(Contact).filter(Contact.id == cid, Contact.tenant_id == tenant_id).one_or_none()
    if not customer:
        raise NotFound("Customer not found")
    if not customer.has_role("customer"):
        raise ValidationError("Selected contact is not a customer")
    return customer


def _default_bill_to(customer: Contact) -> dict:
    role = customer.role("customer")
    billing = ((role.role_specific_data or {}) if role else {}).get("billing_address")
    if billing:
        return billing
    return {
        "line1": customer.address_line1,
        "line2": customer.address_line2,
        "city": customer.city,
        "state": customer.state,
        "postal_code": customer.postal_code,
        "country": customer.country,
    }


def _check_titles(s: Session, tenant_id: int, lines: list[dict]) -> None:
    ids = {ln["title_id"] for ln in lines if ln["title_id"] is not None}
    if not ids:
        return
    found = {tid for (tid,) in s.query(Title.id).filter(Title.tenant_id == tenant_id, Title.id.in_(ids)).all()}
    missing = ids - found
    if missing:
        raise ValidationError("Title not found")


def _apply(invoice: Invoice, values: dict, lines: list[dict]) -> None:
    for field in (
        "invoice_date",
        "payment_terms",
        "custom_terms_days",
        "ship_to_address",
        "po_number",
        "shipping_method",
        "shipping_cost",
        "tax_rate",
        "currency",
        "notes",
        "internal_notes",
    ):
        setattr(invoice, field, values[field])
    invoice.due_date = values["due_date"] or calculate_due_date(
        values["invoice_date"], values["payment_terms"], values["custom_terms_days"]
    )

    invoice.line_items.clear()
    for ln in lines:
        invoice.line_items.append(
            InvoiceLineItem(
                line_number=ln["line_number"],
                item_code=ln["item_code"],
                description=ln["description"],
                quantity=ln["quantity"],
                unit_price=ln["unit_price"],
                tax_rate=ln["tax_rate"],
                amount=_cents(Decimal(str(ln["quantity"])) * ln["unit_price"]),
                title_id=ln["title_id"],
            )
        )

    totals = calculate_totals(lines, values["tax_rate"], values["shipping_cost"])
    invoice.subtotal = totals["subtotal"]
    invoice.tax_amount = totals["tax_amount"]
    invoice.total = totals["total"]
    invoice.balance_due = max(totals["total"] - (invoice.amount_paid or Decimal("0.00")), Decimal("0.00"))


# ---------- Queries ----------
def get_invoice(s: Session, tenant_id: int, invoice_id: int) -> Invoice:
    invoice = s.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id).one_or_none()
    if not invoice:
        raise NotFound(INVOICE_NOT_FOUND)
    return invoice


def list_invoices(
    s: Session,
    tenant_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    date_from=None,
    date_to=None,
) -> list[Invoice]:
    q = s.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if status:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}")
        q = q.filter(Invoice.status == status)
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)
    start = parse_date(date_from)
    end = parse_date(date_to)
    if start:
        q = q.filter(Invoice.invoice_date >= start)
    if end:
        q = q.filter(Invoice.invoice_date <= end)
    return q.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


# ---------- Mutations ----------
def create_invoice(s: Session, payload: dict, user: User) -> Invoice:
    values = _clean_header(payload)
    lines = _clean_line_items(payload.get("line_items"))

    ensure_permission(user, "invoices.manage", "You do not have permission to create invoices")
    customer = _customer(s, user.tenant_id, payload.get("customer_id"))
    _check_titles(s, user.tenant_id, lines)

    now = datetime.utcnow()
    invoice = Invoice(
        tenant_id=user.tenant_id,
        invoice_number=generate_invoice_number(s, user.tenant_id),
        customer_id=customer.id,
        status="draft",
        bill_to_address=values["bill_to_address"] or _default_bill_to(customer),
        amount_paid=Decimal("0.00"),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    _apply(invoice, values, lines)
    s.add(invoice)
    s.flush()

    record_event(
        s,
        actor=user,
        action="invoices.invoice.create",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        metadata={
            "invoice_number": invoice.invoice_number,
            "customer_id": customer.id,
            "total": invoice.total,
            "line_count": len(lines),
        },
    )
    return invoice


def update_invoice(s: Session, invoice_id: int, payload: dict, user: User) -> Invoice:
    """Drafts only. Replaces every line item and recomputes totals."""
    values = _clean_header(payload)
    lines = _clean_line_items(payload.get("line_items"))

    ensure_permission(user, "invoices.manage", "You do not have permission to edit invoices")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    if invoice.status != "draft":
        raise ValidationError("Only draft invoices can be edited")

    before = {"total": invoice.total, "customer_id": invoice.customer_id, "due_date": invoice.due_date}
    if payload.get("customer_id") not in (None, ""):
        customer = _customer(s, user.tenant_id, payload.get("customer_id"))
        invoice.customer_id = customer.id
        invoice.customer = customer
    _check_titles(s, user.tenant_id, lines)
    if values["bill_to_address"]:
        invoice.bill_to_address = values["bill_to_address"]
    _apply(invoice, values, lines)
    invoice.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="invoices.invoice.update",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        metadata={
            "invoice_number": invoice.invoice_number,
            "before": before,
            "after": {"total": invoice.total, "customer_id": invoice.customer_id, "due_date": invoice.due_date},
        },
    )
    return invoice


def void_invoice(s: Session, invoice_id: int, user: User, *, reason: str | None = None) -> Invoice:
    ensure_permission(user, "invoices.manage", "You do not have permission to void invoices")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    if invoice.status == "paid":
        raise ValidationError("Cannot void a paid invoice")
    if invoice.status == "void":
        raise ValidationError("Invoice is already void")

    previous = invoice.status
    invoice.status = "void"
    invoice.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="invoices.invoice.void",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        reason=clean_str(reason),
        metadata={"invoice_number": invoice.invoice_number, "from": previous, "to": "void"},
    )
    return invoice


def record_payment(s: Session, invoice_id: int, payload: dict, user: User) -> Payment:
    amount = parse_decimal(payload.get("amount"), field="Payment amount")
    if amount is None or amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    amount = _cents(amount)
    method = payload.get("payment_method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")
    payment_date = parse_date(payload.get("payment_date")) or date.today()
    reference = clean_str(payload.get("reference_number"))
    if reference and len(reference) > 100:
        raise ValidationError("Reference number is too long")
    notes = clean_str(payload.get("notes"))
    if notes and len(notes) > NOTES_MAX:
        raise ValidationError("Notes are too long")

    ensure_permission(user, "invoices.manage", "You do not have permission to record payments")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    if invoice.status not in PAYABLE_STATUSES:
        raise ValidationError(f"Cannot record payment for {invoice.status} invoice")

    if amount > invoice.balance_due:
        logger.warning(
            "Overpayment on invoice %s: payment %s exceeds balance %s",
            invoice.invoice_number,
            amount,
            invoice.balance_due,
        )

    payment = Payment(
        tenant_id=invoice.tenant_id,
        payment_date=payment_date,
        amount=amount,
        payment_method=method,
        reference_number=reference,
        notes=notes,
        created_by_user_id=user.id,
    )
    invoice.payments.append(payment)

    previous = invoice.status
    invoice.amount_paid = _cents((invoice.amount_paid or Decimal("0")) + amount)
    invoice.balance_due = max(_cents(invoice.total - invoice.amount_paid), Decimal("0.00"))
    invoice.status = "paid" if invoice.balance_due <= 0 else "partially_paid"
    invoice.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action="invoices.payment.record",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        metadata={
            "payment_id": payment.id,
            "amount": amount,
            "payment_method": method,
            "previous_status": previous,
            "new_invoice_status": invoice.status,
            "balance_due": invoice.balance_due,
        },
    )
    return payment


def mark_overdue_invoices(s: Session, *, today: date | None = None, tenant_id: int | None = None, user: User | None = None) -> list[Invoice]:
    """Sent / partially paid invoices past their due date become overdue."""
    today = today or date.today()
    q = s.query(Invoice).filter(Invoice.status.in_(OVERDUE_CANDIDATES), Invoice.due_date < today)
    if tenant_id is not None:
        q = q.filter(Invoice.tenant_id == tenant_id)
    invoices = q.all()
    for invoice in invoices:
        previous = invoice.status
        invoice.status = "overdue"
        invoice.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            tenant_id=invoice.tenant_id,
            action="invoices.invoice.mark_overdue",
            entity_type="Invoice",
            entity_id=str(invoice.id),
            metadata={"invoice_number": invoice.invoice_number, "from": previous, "due_date": invoice.due_date},
        )
    if invoices:
        logger.info("Marked %d invoice(s) overdue as of %s", len(invoices), today.isoformat())
    return invoices


# ---------- PDF + email ----------
def invoice_pdf_key(invoice: Invoice) -> str:
    return f"invoices/{invoice.tenant_id}/{invoice.id}/{invoice_pdf_filename(invoice)}"


def ensure_invoice_pdf(
    invoice: Invoice, storage: Storage, *, company_name: str = "", regenerate: bool = False
) -> tuple[str, bytes]:
    """Return (storage key, pdf bytes), rendering and storing the PDF when needed."""
    key = invoice.pdf_storage_key
    if key and not regenerate:
        try:
            with storage.open(key) as fh:
                return key, fh.read()
        except StorageError as e:
            logger.warning("Stored PDF for invoice %s unreadable, regenerating: %s", invoice.invoice_number, e)
    data = render_invoice_pdf(invoice, company_name=company_name)
    key = invoice_pdf_key(invoice)
    storage.put_bytes(key, data, content_type="application/pdf")
    invoice.pdf_storage_key = key
    return key, data


def generate_invoice_pdf(s: Session, invoice_id: int, user: User, *, storage: Storage, company_name: str = "") -> tuple[Invoice, bytes]:
    ensure_permission(user, "invoices.view", "You do not have permission to generate invoice PDFs")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    _, data = ensure_invoice_pdf(invoice, storage, company_name=company_name, regenerate=True)
    return invoice, data


def _email_invoice(invoice: Invoice, pdf: bytes, *, company_name: str, reminder: bool) -> str:
    customer = invoice.customer
    if not customer or not customer.email:
        name = customer.full_name if customer else "Unknown"
        raise ValidationError(f"Customer {name} has no email address")

    sender = company_name or "Accounts Receivable"
    subject = f"{'Reminder: ' if reminder else ''}Invoice {invoice.invoice_number} from {sender}"
    body = "\n".join(
        [
            f"Dear {customer.full_name},",
            "",
            f"Please find attached invoice {invoice.invoice_number} dated {invoice.invoice_date.isoformat()}.",
            f"Amount due: {invoice.currency} {invoice.balance_due:,.2f}",
            f"Due date: {invoice.due_date.isoformat()}",
            "",
            "Thank you for your business.",
            sender,
        ]
    )
    sent, detail = send_email(
        customer.email,
        subject,
        body,
        attachments=[(invoice_pdf_filename(invoice), pdf, "application/pdf")],
    )
    if not sent:
        raise DeliveryError(detail or "Email delivery failed")
    return detail


def send_invoice(s: Session, invoice_id: int, user: User, *, storage: Storage, company_name: str = "") -> tuple[Invoice, str]:
    """Email the invoice PDF to the customer. A draft becomes sent. Returns (invoice, message_id)."""
    ensure_permission(user, "invoices.manage", "You do not have permission to send invoices")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    if invoice.status == "void":
        raise ValidationError("Cannot send a voided invoice")

    _, pdf = ensure_invoice_pdf(invoice, storage, company_name=company_name)

    previous = invoice.status
    if invoice.status == "draft":
        invoice.status = "sent"
    invoice.sent_at = datetime.utcnow()
    invoice.updated_at = invoice.sent_at
    # a delivery failure raises and the caller rolls the flushed status back
    s.flush()
    message_id = _email_invoice(invoice, pdf, company_name=company_name, reminder=False)

    record_event(
        s,
        actor=user,
        action="invoices.invoice.send",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        metadata={"invoice_number": invoice.invoice_number, "from": previous, "to": invoice.status, "message_id": message_id},
    )
    return invoice, message_id


def resend_invoice(s: Session, invoice_id: int, user: User, *, storage: Storage, company_name: str = "") -> tuple[Invoice, str]:
    """Re-email with a freshly rendered PDF; status is unchanged."""
    ensure_permission(user, "invoices.manage", "You do not have permission to resend invoices")
    invoice = get_invoice(s, user.tenant_id, invoice_id)
    if invoice.status not in RESENDABLE_STATUSES:
        raise ValidationError(f"Cannot resend invoice with status '{invoice.status}'")

    _, pdf = ensure_invoice_pdf(invoice, storage, company_name=company_name, regenerate=True)
    invoice.sent_at = datetime.utcnow()
    s.flush()
    message_id = _email_invoice(invoice, pdf, company_name=company_name, reminder=True)

    record_event(
        s,
        actor=user,
        action="invoices.invoice.resend",
        entity_type="Invoice",
        entity_id=str(invoice.id),
        metadata={"invoice_number": invoice.invoice_number, "status": invoice.status, "message_id": message_id},
    )
    return invoice, message_id


# ---------- Serialization ----------
def line_to_dict(ln: InvoiceLineItem) -> dict:
    return {
        "line_number": ln.line_number,
        "item_code": ln.item_code,
        "description": ln.description,
        "quantity": plain_number(ln.quantity),
        "unit_price": str(ln.unit_price),
        "tax_rate": str(ln.tax_rate) if ln.tax_rate is not None else None,
        "amount": str(ln.amount),
        "title_id": ln.title_id,
    }


def payment_to_dict(p: Payment) -> dict:
    return {
        "id": p.id,
        "invoice_id": p.invoice_id,
        "payment_date": iso(p.payment_date),
        "amount": str(p.amount),
        "payment_method": p.payment_method,
        "reference_number": p.reference_number,
        "notes": p.notes,
        "created_at": iso(p.created_at),
    }


def invoice_to_dict(inv: Invoice, *, detail: bool = False) -> dict:
    data = {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "customer_id": inv.customer_id,
        "customer_name": inv.customer.full_name if inv.customer else None,
        "invoice_date": iso(inv.invoice_date),
        "due_date": iso(inv.due_date),
        "status": inv.status,
        "total": str(inv.total),
        "amount_paid": str(inv.amount_paid),
        "balance_due": str(inv.balance_due),
        "currency": inv.currency,
        "sent_at": iso(inv.sent_at),
    }
    if detail:
        data.update(
            {
                "bill_to_address": inv.bill_to_address,
                "ship_to_address": inv.ship_to_address,
                "po_number": inv.po_number,
                "payment_terms": inv.payment_terms,
                "custom_terms_days": inv.custom_terms_days,
                "shipping_method": inv.shipping_method,
                "shipping_cost": str(inv.shipping_cost),
                "subtotal": str(inv.subtotal),
                "tax_rate": str(inv.tax_rate),
                "tax_amount": str(inv.tax_amount),
                "notes": inv.notes,
                "internal_notes": inv.internal_notes,
                "has_pdf": bool(inv.pdf_storage_key),
                "line_items": [line_to_dict(ln) for ln in inv.line_items],
                "payments": [payment_to_dict(p) for p in inv.payments],
                "created_at": iso(inv.created_at),
                "updated_at": iso(inv.updated_at),
            }
        )
    return data
