from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation


def clean_str(value: str | None) -> str | None:
    v = (value or "").strip()
    return v or None


def parse_date(value: str | None) -> date | None:
    v = (value or "").strip()
    if not v:
        return None
    try:
        return date.fromisoformat(v)
    except ValueError:
        return None


def parse_int(value: str | None) -> int | None:
    v = (value or "").strip()
    if not v:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def parse_count(value: str | None) -> int | str | None:
    """Whole-number form field. Blank is None; text that is not an integer comes back
    unchanged so the payload validator can reject it instead of storing zero."""
    v = (value or "").strip()
    if not v:
        return None
    try:
        return int(v)
    except ValueError:
        return v


def parse_float(value: str | None) -> float | None:
    v = (value or "").strip()
    if not v:
        return None
    try:
        return float(v)
    except ValueError:
        return None


def parse_decimal(value: str | None) -> Decimal | None:
    v = (value or "").strip().replace(",", "")
    if not v:
        return None
    try:
        return Decimal(v).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def parse_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "on", "yes")


def parse_id_list(values: list[str]) -> list[int]:
    out: list[int] = []
    for raw in values:
        v = parse_int(raw)
        if v is not None and v not in out:
            out.append(v)
    return out
