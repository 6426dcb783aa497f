from __future__ import annotations

import re
from numbers import Number

from app.folio.utils import as_text, is_valid_email, is_valid_url, parse_date
from app.folio.errors import ValidationError

from .tax import TIN_TYPES, validate_tin

CONTACT_STATUSES = ("active", "inactive")
CONTACT_ROLES = ("author", "customer", "vendor", "distributor")
PAYMENT_METHODS = ("direct_deposit", "check", "wire_transfer")
ACCOUNT_TYPES = ("checking", "savings")

W9_DATE_REQUIRED = "W-9 received date is required when W-9 is marked as received"

SWIFT_RE = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")

# field -> (max length, message when too long)
CONTACT_TEXT_FIELDS: dict[str, tuple[int, str]] = {
    "first_name": (255, "First name is too long"),
    "last_name": (255, "Last name is too long"),
    "email": (255, "Email is too long"),
    "phone": (50, "Phone number is too long"),
    "address_line1": (255, "Address line 1 is too long"),
    "address_line2": (255, "Address line 2 is too long"),
    "city": (100, "City is too long"),
    "state": (100, "State is too long"),
    "postal_code": (20, "Postal code is too long"),
    "country": (100, "Country is too long"),
    "tax_id": (50, "Tax ID is too long"),
    "notes": (5000, "Notes are too long"),
}

ADDRESS_LIMITS = {"line1": 255, "line2": 255, "city": 100, "state": 100, "postal_code": 20, "country": 100}


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _check_max(errors: list[str], data: dict, field: str, limit: int, label: str) -> None:
    value = data.get(field)
    if value is not None and len(str(value)) > limit:
        errors.append(f"{label} must be at most {limit} characters")


def validate_contact_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate contact create/update payload. Returns list of errors."""
    errors = [
        f"{field} must be a string"
        for field in CONTACT_TEXT_FIELDS
        if payload.get(field) is not None and not isinstance(payload.get(field), str)
    ]
    if errors:
        return errors

    for field, label in (("first_name", "First name"), ("last_name", "Last name")):
        if partial and field not in payload:
            continue
        if not (payload.get(field) or "").strip():
            errors.append(f"{label} is required")

    for field, (limit, message) in CONTACT_TEXT_FIELDS.items():
        value = payload.get(field)
        if value is not None and len(str(value).strip()) > limit:
            errors.append(message)

    email = (payload.get("email") or "").strip()
    if email and not is_valid_email(email):
        errors.append("Invalid email format")

    status = payload.get("status")
    if status is not None and status not in CONTACT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CONTACT_STATUSES)}")

    payment_info = payload.get("payment_info")
    if payment_info:
        errors.extend(validate_payment_info(payment_info))

    return errors


def validate_payment_info(info) -> list[str]:
    if not isinstance(info, dict):
        return ["Payment info must be an object"]
    method = info.get("method")
    errors: list[str] = []
    bank_name = info.get("bank_name")
    if bank_name is not None and not isinstance(bank_name, str):
        return ["bank_name must be a string"]
    if method == "direct_deposit":
        if not (info.get("bank_name") or "").strip():
            errors.append("Bank name is required")
        _check_max(errors, info, "bank_name", 255, "Bank name")
        if info.get("account_type") not in ACCOUNT_TYPES:
            errors.append("Account type must be checking or savings")
        if not re.fullmatch(r"\d{9}", str(info.get("routing_number") or "")):
            errors.append("Routing number must be 9 digits")
        if not re.fullmatch(r"\d{4}", str(info.get("account_number_last4") or "")):
            errors.append("Must be 4 digits")
    elif method == "check":
        _check_max(errors, info, "payee_name", 255, "Payee name")
    elif method == "wire_transfer":
        if not (info.get("bank_name") or "").strip():
            errors.append("Bank name is required")
        _check_max(errors, info, "bank_name", 255, "Bank name")
        swift = str(info.get("swift_code") or "")
        if not 8 <= len(swift) <= 11:
            errors.append("SWIFT code must be 8-11 characters")
        elif not SWIFT_RE.match(swift):
            errors.append("Invalid SWIFT code format")
        _check_max(errors, info, "iban", 34, "IBAN")
    else:
        errors.append(f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}")
    return errors


def validate_address(errors: list[str], value, label: str) -> None:
    if value is None:
        return
    if not isinstance(value, dict):
        errors.append(f"{label} must be an object")
        return
    for key, limit in ADDRESS_LIMITS.items():
        _check_max(errors, value, key, limit, f"{label} {key.replace('_', ' ')}")


def validate_role_data(role: str, data) -> list[str]:
    """Validate role_specific_data for one role. None/empty is always acceptable."""
    if role not in CONTACT_ROLES:
        return [f"Invalid role. Must be one of: {', '.join(CONTACT_ROLES)}"]
    if not data:
        return []
    if not isinstance(data, dict):
        return ["Role data must be an object"]

    errors: list[str] = []
    if role == "author":
        _check_max(errors, data, "pen_name", 255, "Pen name")
        _check_max(errors, data, "bio", 5000, "Bio")
        website = data.get("website")
        if website and not is_valid_url(website):
            errors.append("Website must be a valid URL")
        social = data.get("social_links")
        if social is not None:
            if not isinstance(social, dict):
                errors.append("Social links must be an object")
            else:
                for network in ("twitter", "instagram", "linkedin"):
                    link = social.get(network)
                    if link and not is_valid_url(link):
                        errors.append(f"{network.capitalize()} link must be a valid URL")
    elif role == "customer":
        validate_address(errors, data.get("billing_address"), "Billing address")
        validate_address(errors, data.get("shipping_address"), "Shipping address")
        credit_limit = data.get("credit_limit")
        if credit_limit is not None and (not _is_number(credit_limit) or credit_limit < 0):
            errors.append("Credit limit must be a non-negative number")
        _check_max(errors, data, "payment_terms", 100, "Payment terms")
    elif role == "vendor":
        _check_max(errors, data, "vendor_code", 50, "Vendor code")
        lead = data.get("lead_time_days")
        if lead is not None and (not _is_number(lead) or int(lead) != lead or lead < 0):
            errors.append("Lead time must be a non-negative whole number of days")
        min_order = data.get("min_order_amount")
        if min_order is not None and (not _is_number(min_order) or min_order < 0):
            errors.append("Minimum order amount must be a non-negative number")
    elif role == "distributor":
        _check_max(errors, data, "territory", 255, "Territory")
        rate = data.get("commission_rate")
        if rate is not None and (not _is_number(rate) or not 0 <= rate <= 1):
            errors.append("Commission rate must be between 0 and 1")
        _check_max(errors, data, "contract_terms", 5000, "Contract terms")
    return errors


def clean_tax_info(payload: dict, *, partial: bool = False) -> dict:
    """
    Validate and normalise tax info. Raises ValidationError on the first problem.
    In partial mode only supplied keys are returned.
    """
    out: dict = {}
    tin = as_text(payload.get("tin"), "tin")
    tin_type = payload.get("tin_type")

    if tin or not partial:
        if tin_type not in TIN_TYPES:
            raise ValidationError("TIN type must be ssn or ein")
        if not tin:
            raise ValidationError("TIN is required")
        if not validate_tin(tin, tin_type):
            if tin_type == "ssn":
                raise ValidationError("SSN must be in XXX-XX-XXXX format")
            raise ValidationError("EIN must be in XX-XXXXXXX format")
        out["tin"] = tin
        out["tin_type"] = tin_type

    for flag in ("is_us_based", "w9_received"):
        if flag in payload:
            if not isinstance(payload[flag], bool):
                raise ValidationError(f"{flag} must be true or false")
            out[flag] = payload[flag]
        elif not partial:
            out[flag] = flag == "is_us_based"

    if "w9_received_date" in payload or not partial:
        out["w9_received_date"] = parse_date(payload.get("w9_received_date"))

    if not partial and out["w9_received"] and not out["w9_received_date"]:
        raise ValidationError(W9_DATE_REQUIRED)
    return out
