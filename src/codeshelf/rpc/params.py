"""Argument coercion for RPC method parameters."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def required_string(params: dict[str, Any], key: str, *, label: str | None = None) -> str:
    value = params.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    msg = f"{label or key} is required"
    raise ValueError(msg)


def optional_string(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    msg = f"{key} must be a string"
    raise ValueError(msg)


def required_mapping(
    params: dict[str, Any], key: str, *, label: str | None = None
) -> dict[str, Any]:
    value = params.get(key)
    if isinstance(value, dict) and value:
        return value
    msg = f"{label or key} is required"
    raise ValueError(msg)


def optional_mapping(params: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    msg = f"{key} must be an object"
    raise ValueError(msg)


def parse_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return default


def parse_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 string to an aware datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        msg = "timestamp must be an ISO-8601 string"
        raise ValueError(msg)
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
