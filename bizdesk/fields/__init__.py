from bizdesk.fields.schemas import (
    FieldGridConfig,
    FieldOption,
    FieldPosition,
    FieldSchema,
    FieldValidation,
    FormButtonsConfig,
    FormLayoutConfig,
    GridConfiguration,
    ModuleConfig,
)
from bizdesk.fields.validators import error_message, run_validators, synthesize_validators
from bizdesk.fields.values import format_field_value, get_field_value, sort_key, type_default

__all__ = [
    "FieldGridConfig",
    "FieldOption",
    "FieldPosition",
    "FieldSchema",
    "FieldValidation",
    "FormButtonsConfig",
    "FormLayoutConfig",
    "GridConfiguration",
    "ModuleConfig",
    "error_message",
    "format_field_value",
    "get_field_value",
    "run_validators",
    "sort_key",
    "synthesize_validators",
    "type_default",
]
