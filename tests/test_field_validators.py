from __future__ import annotations

import pytest
from pydantic import ValidationError

from bizdesk.fields.schemas import FieldOption, FieldSchema, FieldValidation
from bizdesk.fields.validators import error_message, run_validators, synthesize_validators


def _field(**overrides) -> FieldSchema:  # type: ignore[no-untyped-def]
    payload = {"id": "f1", "name": "code", "label": "Code", **overrides}
    return FieldSchema.model_validate(payload)


def _errors(field: FieldSchema, value):  # type: ignore[no-untyped-def]
    return run_validators(synthesize_validators(field), value)


def test_required_rejects_empty_values_only() -> None:
    field = _field(validation={"required": True})

    assert set(_errors(field, "")) == {"required"}
    assert set(_errors(field, None)) == {"required"}
    assert set(_errors(field, [])) == {"required"}
    assert _errors(field, " ") is None
    assert _errors(field, 0) is None
    assert _errors(field, False) is None


def test_failing_validators_are_combined_on_one_control() -> None:
    field = _field(validation={"min_length": 5, "pattern": "^[a-z]+$"})

    errors = _errors(field, "AB")

    assert errors is not None
    assert set(errors) == {"minlength", "pattern"}
    assert errors["minlength"] == {"required_length": 5, "actual_length": 2}


def test_email_and_url_trigger_from_type_or_flag() -> None:
    by_type = _field(type="email")
    by_flag = _field(validation={"email": True})
    url_type = _field(type="url")

    assert set(_errors(by_type, "not-an-email")) == {"email"}
    assert set(_errors(by_flag, "not-an-email")) == {"email"}
    assert _errors(by_type, "ops@example.com") is None
    assert set(_errors(url_type, "not a url")) == {"url"}
    assert _errors(url_type, "https://example.com/docs/page") is None
    assert _errors(url_type, "example.org") is None


def test_empty_value_is_valid_for_format_predicates() -> None:
    field = _field(type="email", validation={"url": True, "pattern": "^x$"})

    assert _errors(field, "") is None
    assert _errors(field, None) is None


def test_min_and_max_compare_numbers_and_skip_text() -> None:
    field = _field(type="number", validation={"min": 0, "max": 10})

    assert _errors(field, -1) == {"min": {"min": 0.0, "actual": -1.0}}
    assert _errors(field, "11") == {"max": {"max": 10.0, "actual": 11.0}}
    assert _errors(field, 5) is None
    assert _errors(field, "abc") is None


def test_error_message_follows_priority() -> None:
    errors = {"pattern": {"required_pattern": "x"}, "required": {"value": ""}, "email": {"value": ""}}

    assert error_message(errors, "Email") == "Email is required"
    assert error_message({"pattern": {}, "email": {}}) == "Invalid email format"
    assert error_message({"minlength": {"required_length": 3, "actual_length": 1}}) == "Minimum 3 characters"
    assert error_message({"maxlength": {"required_length": 8, "actual_length": 9}}) == "Maximum 8 characters"
    assert error_message({"min": {"min": 0.5, "actual": 0.1}}) == "Minimum value is 0.5"
    assert error_message({"max": {"max": 100.0, "actual": 101.0}}) == "Maximum value is 100"
    assert error_message({"url": {"value": "x"}}) == "Invalid URL"
    assert error_message(None) == ""


def test_option_fields_require_options() -> None:
    with pytest.raises(ValidationError):
        FieldSchema(id="s", name="status", label="Status", type="select")

    field = FieldSchema(
        id="s",
        name="status",
        label="Status",
        type="select",
        options=[FieldOption(value="active", label="Active")],
        validation=FieldValidation(required=True),
    )
    assert field.option_label("active") == "Active"
    assert field.option_label("missing") is None
