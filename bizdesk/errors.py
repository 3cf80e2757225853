from __future__ import annotations

from typing import Any


class BizdeskError(Exception):
    """Base class for errors raised by the schema engine."""

    code = "BIZDESK_ERROR"


class ConfigUnavailableError(BizdeskError):
    """The configuration document could not be read from storage.

    The configuration store recovers from this locally by falling back to the
    built-in defaults, so callers only see it as a warning.
    """

    code = "CONFIG_UNAVAILABLE"


class MutationFailedError(BizdeskError):
    """A write to the persistence collaborator was rejected."""

    code = "MUTATION_FAILED"

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class ValidationFailedError(BizdeskError):
    """Form values failed local validation. Never reaches storage."""

    code = "VALIDATION_FAILED"

    def __init__(self, errors: dict[str, dict[str, Any]], messages: dict[str, str] | None = None) -> None:
        self.errors = errors
        self.messages = messages or {}
        super().__init__(f"invalid fields: {', '.join(sorted(errors))}")


class LayoutValidationError(BizdeskError, ValueError):
    """A form layout was refused before being persisted."""

    code = "INVALID_LAYOUT"


class FieldNotFoundError(BizdeskError, LookupError):
    code = "FIELD_NOT_FOUND"

    def __init__(self, field_id: str) -> None:
        self.field_id = field_id
        super().__init__(f"field not found: {field_id}")


class RecordNotFoundError(BizdeskError, LookupError):
    code = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"record not found: {record_id}")


class UnknownModuleError(BizdeskError, LookupError):
    code = "UNKNOWN_MODULE"

    def __init__(self, module: str) -> None:
        self.module = module
        super().__init__(f"unknown module: {module}")


class DuplicateFieldError(BizdeskError, ValueError):
    code = "FIELD_EXISTS"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"field already exists: {name}")


class SystemFieldError(BizdeskError):
    """System fields cannot be removed or deactivated."""

    code = "SYSTEM_FIELD"

    def __init__(self, field_id: str, operation: str) -> None:
        self.field_id = field_id
        self.operation = operation
        super().__init__(f"cannot {operation} system field: {field_id}")


class FormStateError(BizdeskError):
    code = "INVALID_FORM_STATE"

    def __init__(self, state: str, action: str) -> None:
        self.state = state
        self.action = action
        super().__init__(f"cannot {action} while form is {state}")
