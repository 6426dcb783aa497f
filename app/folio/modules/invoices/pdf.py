"""
Invoice PDF rendering with the reportlab canvas.
"""
from __future__ import annotations

import io
import re

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from app.folio.utils import plain_number

from .models import Invoice

INK = HexColor("#1F2933")
MUTED = HexColor("#616E7C")
RULE = HexColor("#CBD2D9")

PAGE_W, PAGE_H = letter
MARGIN = 0.75 * inch

TERMS_LABELS = {
    "net_30": "Net 30",
    "net_60": "Net 60",
    "due_on_receipt": "Due on receipt",
}


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


def invoice_pdf_filename(invoice: Invoice) -> str:
    number = re.sub(r"[^A-Za-z0-9-]", "", invoice.invoice_number)
    customer = _slug(invoice.customer.full_name if invoice.customer else "")
    return f"{number}-{customer}.pdf" if customer else f"{number}.pdf"


def _money(value, currency: str) -> str:
    prefix = "$" if currency == "USD" else f"{currency} "
    return f"{prefix}{value:,.2f}"


def _address_lines(addr: dict | None) -> list[str]:
    if not addr:
        return []
    lines = [addr.get("line1"), addr.get("line2")]
    city_line = ", ".join(p for p in (addr.get("city"), addr.get("state")) if p)
    if addr.get("postal_code"):
        city_line = f"{city_line} {addr['postal_code']}".strip()
    lines += [city_line, addr.get("country")]
    return [ln for ln in lines if ln]


def _terms_label(invoice: Invoice) -> str:
    if invoice.payment_terms == "custom":
        return f"Net {invoice.custom_terms_days or 0}"
    return TERMS_LABELS.get(invoice.payment_terms, invoice.payment_terms)


class _Writer:
    def __init__(self, buf: io.BytesIO, title: str):
        self.c = canvas.Canvas(buf, pagesize=letter)
        self.c.setTitle(title)
        self.y = PAGE_H - MARGIN

    def text(self, x: float, value: str, *, size: int = 10, bold: bool = False, color=INK, align: str = "left") -> None:
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", size)
        self.c.setFillColor(color)
        if align == "right":
            self.c.drawRightString(x, self.y, value)
        else:
            self.c.drawString(x, self.y, value)

    def down(self, amount: float) -> None:
        self.y -= amount
        if self.y < MARGIN + 40:
            self.c.showPage()
            self.y = PAGE_H - MARGIN

    def rule(self) -> None:
        self.c.setStrokeColor(RULE)
        self.c.setLineWidth(0.5)
        self.c.line(MARGIN, self.y, PAGE_W - MARGIN, self.y)


def render_invoice_pdf(invoice: Invoice, *, company_name: str = "") -> bytes:
    buf = io.BytesIO()
    w = _Writer(buf, f"Invoice {invoice.invoice_number}")
    right = PAGE_W - MARGIN
    cur = invoice.currency or "USD"

    w.text(MARGIN, company_name or "Invoice", size=16, bold=True)
    w.text(right, "INVOICE", size=16, bold=True, align="right")
    w.down(22)
    w.text(right, invoice.invoice_number, size=10, color=MUTED, align="right")
    w.down(14)
    w.text(right, f"Invoice date: {invoice.invoice_date.isoformat()}", size=9, align="right")
    w.down(12)
    w.text(right, f"Due date: {invoice.due_date.isoformat()}", size=9, align="right")
    w.down(12)
    w.text(right, f"Terms: {_terms_label(invoice)}", size=9, align="right")
    if invoice.po_number:
        w.down(12)
        w.text(right, f"PO: {invoice.po_number}", size=9, align="right")
    w.down(24)

    w.text(MARGIN, "Bill to", size=9, bold=True, color=MUTED)
    if invoice.ship_to_address:
        w.text(MARGIN + 3.25 * inch, "Ship to", size=9, bold=True, color=MUTED)
    w.down(13)
    bill = [invoice.customer.full_name] if invoice.customer else []
    bill += _address_lines(invoice.bill_to_address)
    ship = _address_lines(invoice.ship_to_address)
    for i in range(max(len(bill), len(ship))):
        if i < len(bill):
            w.text(MARGIN, bill[i], size=10)
        if i < len(ship):
            w.text(MARGIN + 3.25 * inch, ship[i], size=10)
        w.down(13)
    w.down(14)

    cols = (MARGIN, MARGIN + 0.9 * inch, right - 2.1 * inch, right - 1.1 * inch, right)
    w.text(cols[0], "Item", size=9, bold=True)
    w.text(cols[1], "Description", size=9, bold=True)
    w.text(cols[2], "Qty", size=9, bold=True, align="right")
    w.text(cols[3], "Unit price", size=9, bold=True, align="right")
    w.text(cols[4], "Amount", size=9, bold=True, align="right")
    w.down(6)
    w.rule()
    w.down(14)
    for line in invoice.line_items:
        w.text(cols[0], (line.item_code or "")[:14], size=9)
        w.text(cols[1], line.description[:60], size=9)
        w.text(cols[2], plain_number(line.quantity), size=9, align="right")
        w.text(cols[3], _money(line.unit_price, cur), size=9, align="right")
        w.text(cols[4], _money(line.amount, cur), size=9, align="right")
        w.down(14)
    w.rule()
    w.down(18)

    totals = [("Subtotal", invoice.subtotal)]
    if invoice.tax_amount:
        totals.append((f"Tax ({invoice.tax_rate * 100:.2f}%)", invoice.tax_amount))
    if invoice.shipping_cost:
        totals.append(("Shipping", invoice.shipping_cost))
    totals.append(("Total", invoice.total))
    if invoice.amount_paid:
        totals.append(("Paid", invoice.amount_paid))
    totals.append(("Balance due", invoice.balance_due))
    for label, value in totals:
        bold = label in ("Total", "Balance due")
        w.text(cols[3], label, size=10, bold=bold, align="right")
        w.text(cols[4], _money(value, cur), size=10, bold=bold, align="right")
        w.down(15)

    if invoice.notes:
        w.down(12)
        w.text(MARGIN, "Notes", size=9, bold=True, color=MUTED)
        w.down(13)
        for para in invoice.notes.splitlines():
            w.text(MARGIN, para[:110], size=9)
            w.down(12)

    w.c.showPage()
    w.c.save()
    return buf.getvalue()
