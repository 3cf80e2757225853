from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from bizdesk.fields.schemas import FieldSchema

ValidationErrors = dict[str, dict[str, Any]]
Validator = Callable[[Any], ValidationErrors | None]

URL_RE = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w .-]*)/?$")
EMAIL_RE = re.compile(
    r"^(?=.{1,254}$)(?=.{1,64}@)[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-zA-Z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

_MESSAGE_ORDER = ["required", "email", "minlength", "maxlength", "min", "max", "pattern", "url"]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def required_validator() -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        return {"required": {"value": value}} if is_empty(value) else None

    return validate


def min_length_validator(min_length: int) -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        if is_empty(value) or not hasattr(value, "__len__"):
            return None
        if len(value) < min_length:
            return {"minlength": {"required_length": min_length, "actual_length": len(value)}}
        return None

    return validate


def max_length_validator(max_length: int) -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        if is_empty(value) or not hasattr(value, "__len__"):
            return None
        if len(value) > max_length:
            return {"maxlength": {"required_length": max_length, "actual_length": len(value)}}
        return None

    return validate


def pattern_validator(pattern: str) -> Validator:
    compiled = re.compile(pattern)

    def validate(value: Any) -> ValidationErrors | None:
        if is_empty(value):
            return None
        if compiled.fullmatch(str(value)) is None:
            return {"pattern": {"required_pattern": pattern, "actual_value": value}}
        return None

    return validate


def email_validator() -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        if is_empty(value):
            return None
        return None if EMAIL_RE.match(str(value)) else {"email": {"value": value}}

    return validate


def min_validator(minimum: float) -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        number = None if is_empty(value) else _as_number(value)
        if number is None:
            return None
        return {"min": {"min": minimum, "actual": number}} if number < minimum else None

    return validate


def max_validator(maximum: float) -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        number = None if is_empty(value) else _as_number(value)
        if number is None:
            return None
        return {"max": {"max": maximum, "actual": number}} if number > maximum else None

    return validate


def url_validator() -> Validator:
    def validate(value: Any) -> ValidationErrors | None:
        if is_empty(value):
            return None
        return None if URL_RE.match(str(value)) else {"url": {"value": value}}

    return validate


def synthesize_validators(field: FieldSchema) -> list[Validator]:
    """Build the ordered validator list for one field.

    ``email`` and ``url`` checks are added either from the explicit validation
    flag or from the declared field type.
    """
    validation = field.validation
    validators: list[Validator] = []

    if validation.required:
        validators.append(required_validator())
    if validation.min_length:
        validators.append(min_length_validator(validation.min_length))
    if validation.max_length:
        validators.append(max_length_validator(validation.max_length))
    if validation.pattern:
        validators.append(pattern_validator(validation.pattern))
    if validation.email or field.type == "email":
        validators.append(email_validator())
    if validation.min is not None:
        validators.append(min_validator(validation.min))
    if validation.max is not None:
        validators.append(max_validator(validation.max))
    if validation.url or field.type == "url":
        validators.append(url_validator())

    return validators


def dictionary_option_validators(field: FieldSchema) -> list[Validator]:
    return [required_validator()] if field.validation.required else []


def run_validators(validators: list[Validator], value: Any) -> ValidationErrors | None:
    errors: ValidationErrors = {}
    for validator in validators:
        result = validator(value)
        if result:
            errors.update(result)
    return errors or None


def error_message(errors: ValidationErrors | None, label: str | None = None) -> str:
    if not errors:
        return ""
    name = label or "Field"
    for tag in _MESSAGE_ORDER:
        details = errors.get(tag)
        if details is None:
            continue
        if tag == "required":
            return f"{name} is required"
        if tag == "email":
            return "Invalid email format"
        if tag == "minlength":
            return f"Minimum {details['required_length']} characters"
        if tag == "maxlength":
            return f"Maximum {details['required_length']} characters"
        if tag == "min":
            return f"Minimum value is {details['min']:g}"
        if tag == "max":
            return f"Maximum value is {details['max']:g}"
        if tag == "pattern":
            return "Invalid format"
        if tag == "url":
            return "Invalid URL"
    return "Invalid field"
