"""
Taxpayer identification numbers (SSN / EIN).

Validation and display helpers plus AES-256-GCM encryption. The key is the
TIN_ENCRYPTION_KEY setting: 64 hex characters (32 bytes). Ciphertext is stored
as base64(nonce || ciphertext || tag).
"""
from __future__ import annotations

import base64
import binascii
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from flask import current_app

from app.folio.errors import ConfigurationError, ValidationError

TIN_TYPES = ("ssn", "ein")

SSN_RE = re.compile(r"^\d{3}-\d{2}-\d{4}$")
EIN_RE = re.compile(r"^\d{2}-\d{7}$")

_NONCE_BYTES = 12
ENCRYPTION_NOT_CONFIGURED = "Tax information encryption is not configured. Contact administrator."


def validate_ssn(value: str) -> bool:
    return bool(SSN_RE.match(value or ""))


def validate_ein(value: str) -> bool:
    return bool(EIN_RE.match(value or ""))


def validate_tin(value: str, tin_type: str) -> bool:
    if tin_type == "ssn":
        return validate_ssn(value)
    if tin_type == "ein":
        return validate_ein(value)
    return False


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def format_ssn(value: str) -> str:
    """Progressively formats digits as NNN-NN-NNNN (extra digits are dropped)."""
    d = _digits(value)[:9]
    if len(d) <= 3:
        return d
    if len(d) <= 5:
        return f"{d[:3]}-{d[3:]}"
    return f"{d[:3]}-{d[3:5]}-{d[5:]}"


def format_ein(value: str) -> str:
    """Progressively formats digits as NN-NNNNNNN (extra digits are dropped)."""
    d = _digits(value)[:9]
    if len(d) <= 2:
        return d
    return f"{d[:2]}-{d[2:]}"


def extract_last_four(value: str) -> str:
    return _digits(value)[-4:]


def mask_tin(last_four: str, tin_type: str) -> str:
    if tin_type == "ein":
        return f"**-***{last_four or ''}"
    return f"***-**-{last_four or ''}"


def _load_key(config=None) -> bytes:
    cfg = config if config is not None else current_app.config
    raw = (cfg.get("TIN_ENCRYPTION_KEY") or "").strip()
    if not raw:
        raise ConfigurationError(ENCRYPTION_NOT_CONFIGURED)
    try:
        key = bytes.fromhex(raw)
    except ValueError as e:
        raise ConfigurationError(ENCRYPTION_NOT_CONFIGURED) from e
    if len(key) != 32:
        raise ConfigurationError(ENCRYPTION_NOT_CONFIGURED)
    return key


def encrypt_tin(tin: str, *, config=None) -> str:
    aes = AESGCM(_load_key(config))
    nonce = os.urandom(_NONCE_BYTES)
    sealed = aes.encrypt(nonce, tin.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")


def decrypt_tin(token: str, *, config=None) -> str:
    aes = AESGCM(_load_key(config))
    try:
        blob = base64.b64decode(token.encode("ascii"), validate=True)
        plain = aes.decrypt(blob[:_NONCE_BYTES], blob[_NONCE_BYTES:], None)
    except (binascii.Error, InvalidTag, ValueError) as e:
        raise ValidationError("Stored tax identifier could not be decrypted") from e
    return plain.decode("utf-8")
