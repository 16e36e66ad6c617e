from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, Enum, Integer, String, Text

from voucherhub.time_utils import parse_iso_date


# 9,999,999.99 in the smallest currency unit
MAX_AMOUNT_CENTS = 999_999_999

_PLAIN_INT = re.compile(r"^-?\d+$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level state conflict, e.g. deleting a voucher that has ledger rows."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may send for one model.

    writable_fields is the allowlist; anything else in a payload is refused.
    required_on_create only applies to full (non-partial) payloads.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


VOUCHER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "purpose",
        "expiry_date",
        "limit",
        "voucher_amount_cents",
        "amount_per_code_cents",
        "location",
        "type",
        "code_generation_method",
    }),
    required_on_create=frozenset({"voucher_amount_cents", "amount_per_code_cents"}),
)


def _as_int(key: str, value: Any) -> int:
    # bool is an int subclass; JSON true/false is never a count
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _PLAIN_INT.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be a whole number")


def _as_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 date (YYYY-MM-DD)")


def _as_enum(key: str, enum_cls: type[enum.Enum], value: Any) -> enum.Enum:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"{key} must be one of {allowed}")


def _as_text(key: str, column, value: Any) -> str:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationError(f"{key} must be a string")
    text = str(value).strip()
    if not text and not column.nullable:
        raise ValidationError(f"{key} cannot be blank")
    if column.type.length and len(text) > column.type.length:
        raise ValidationError(f"{key} exceeds max length {column.type.length}")
    return text


def _coerce(key: str, column, value: Any):
    coltype = column.type
    if isinstance(coltype, Integer):
        return _as_int(key, value)
    if isinstance(coltype, Date):
        return _as_date(key, value)
    # Enum subclasses String, so it is matched first
    if isinstance(coltype, Enum) and coltype.enum_class is not None:
        return _as_enum(key, coltype.enum_class, value)
    if isinstance(coltype, (String, Text)):
        return _as_text(key, column, value)
    return value


def validate_payload(*, model, payload: Any, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a client payload into a clean attribute patch for `model`.

    Column metadata drives the checks (type, nullability, String length);
    the policy decides which keys are accepted at all. partial=True is
    PATCH semantics: only the keys present are validated.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create.difference(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(key, column, raw)
    return patch


def enforce_rules_voucher(patch: dict) -> None:
    """Voucher rules that column metadata cannot express. Mutates patch."""
    limit = patch.get("limit")
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0")

    for key in ("voucher_amount_cents", "amount_per_code_cents"):
        amount = patch.get(key)
        if amount is None:
            continue
        if amount < 0:
            raise ValidationError(f"{key} must be >= 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")

    # A blank label would never equal a resolved location
    if patch.get("location") == "":
        patch["location"] = None


def parse_merchant_ids(raw: Any) -> list[int] | None:
    """
    Normalize the merchant_ids field of a voucher payload.

    None leaves associations alone; a bare id is a one-element list;
    duplicates collapse, first occurrence wins.
    """
    if raw is None:
        return None
    items = raw if isinstance(raw, list) else [raw]

    merchant_ids: list[int] = []
    for item in items:
        try:
            merchant_id = _as_int("merchant_ids", item)
        except ValidationError:
            raise ValidationError("merchant_ids must be a list of integers")
        if merchant_id not in merchant_ids:
            merchant_ids.append(merchant_id)
    return merchant_ids
