"""Helpers shared by the entity mappers.

Mappers accept canonical entities either as ORM instances or as plain dicts
(tests, webhook replays), so every read goes through get_field().
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from catalog_sync.models import PlatformEnum


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read `name` from a dict or an object, returning default when absent."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def platform_key(platform: Any) -> str:
    return platform.value if isinstance(platform, PlatformEnum) else str(platform)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# Numbers --------------------------------------------------------------------

def format_number(value: Any) -> Optional[str]:
    """Render a number the way the REST API expects it (string, no exponent).

    9990 -> "9990", Decimal("12.50") -> "12.5", "7" -> "7", None -> None.
    """
    if is_blank(value):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if number == number.to_integral_value():
        return str(number.quantize(Decimal(1)))
    return format(number.normalize(), "f")


def parse_float(value: Any) -> Optional[float]:
    if is_blank(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_int(value: Any) -> Optional[int]:
    if is_blank(value):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


# Dates ----------------------------------------------------------------------

def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 (with or without offset) into a naive UTC datetime."""
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_datetime(value: Any) -> Optional[str]:
    parsed = parse_datetime(value)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S") if parsed else None


# meta_data ------------------------------------------------------------------

def meta_entry(key: str, value: Any) -> Dict[str, str]:
    return {"key": key, "value": str(value)}


def read_meta(meta_data: Optional[List[Dict[str, Any]]], key: str) -> Any:
    """Value of the first meta entry with `key`, or None."""
    for entry in meta_data or []:
        if isinstance(entry, dict) and entry.get("key") == key:
            value = entry.get("value")
            return None if is_blank(value) else value
    return None


# External ids ---------------------------------------------------------------

def external_id_for(entity: Any, platform: Any) -> Optional[str]:
    """The entity's id on `platform`, as a string, or None."""
    external_ids = get_field(entity, "external_ids") or {}
    value = external_ids.get(platform_key(platform))
    return None if is_blank(value) else str(value)


def merge_external_ids(existing: Optional[Dict[str, Any]], platform: Any, external_id: Any) -> Dict[str, str]:
    """Return a new map with platform -> external_id added; other keys untouched."""
    merged = {key: str(value) for key, value in (existing or {}).items() if not is_blank(value)}
    merged[platform_key(platform)] = str(external_id)
    return merged
