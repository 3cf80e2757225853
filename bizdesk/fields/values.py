from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from bizdesk.fields.schemas import TEXT_FIELD_TYPES, FieldSchema

CUSTOM_FIELDS_KEY = "custom_fields"


def get_field_value(record: dict[str, Any], name: str) -> Any:
    """Resolve a value from the record top level, then from its custom fields."""
    if name in record:
        return record[name]
    custom = record.get(CUSTOM_FIELDS_KEY)
    if isinstance(custom, dict) and name in custom:
        return custom[name]
    return None


def type_default(field_type: str) -> Any:
    if field_type == "checkbox":
        return False
    if field_type in {"number", "currency"}:
        return None
    if field_type == "multiselect":
        return []
    return ""


def parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _epoch_millis(value: Any) -> float:
    parsed = parse_datetime(value)
    if parsed is None:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(Decimal(value.strip()))
        except InvalidOperation:
            return 0.0
    return 0.0


def sort_key(value: Any, field: FieldSchema | None) -> Any:
    """Comparison key for one value, chosen by the field type.

    Missing values normalize to ``0`` or ``""`` so mixed records never raise.
    """
    field_type = field.type if field is not None else "text"
    if value is None:
        value = ""
    if field_type in {"number", "currency"}:
        return _to_number(value)
    if field_type in {"date", "datetime"}:
        return _epoch_millis(value)
    if field_type == "checkbox":
        return 1 if value is True else 0
    return str(value).casefold()


def _format_number(value: Any) -> str:
    number = _to_number(value)
    if number.is_integer():
        return str(int(number))
    # repr is the shortest exact form; "f" keeps it out of exponent notation.
    return format(Decimal(repr(number)), "f")


def format_field_value(value: Any, field: FieldSchema) -> str:
    if value is None or value == "":
        return ""

    field_type = field.type
    if field_type == "checkbox":
        return "Yes" if value is True else "No"
    if field_type == "number":
        return _format_number(value)
    if field_type == "currency":
        return f"{_to_number(value):.2f}"
    if field_type == "date":
        parsed = parse_datetime(value)
        return parsed.date().isoformat() if parsed else str(value)
    if field_type == "datetime":
        parsed = parse_datetime(value)
        return parsed.isoformat(timespec="seconds") if parsed else str(value)
    if field_type == "select":
        return field.option_label(value) or str(value)
    if field_type == "multiselect":
        items = value if isinstance(value, (list, tuple)) else [value]
        return ", ".join(field.option_label(item) or str(item) for item in items)
    if field_type == "dictionary":
        if not isinstance(value, dict):
            return str(value)
        parts = []
        for option in field.options:
            entry = value.get(option.value)
            if entry not in (None, ""):
                parts.append(f"{option.label}: {entry}")
        return "; ".join(parts)
    return str(value)


def is_text_type(field_type: str) -> bool:
    return field_type in TEXT_FIELD_TYPES
