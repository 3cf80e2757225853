from bizdesk.forms.service import (
    DynamicForm,
    FormControl,
    FormGrid,
    FormPayload,
    FormSession,
    build_form,
    dictionary_option_value,
    initial_value,
    layout_rows,
    resolve_form_fields,
)

__all__ = [
    "DynamicForm",
    "FormControl",
    "FormGrid",
    "FormPayload",
    "FormSession",
    "build_form",
    "dictionary_option_value",
    "initial_value",
    "layout_rows",
    "resolve_form_fields",
]
