from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from bizdesk.errors import FormStateError, ValidationFailedError
from bizdesk.fields.schemas import FieldSchema, FormButtonsConfig, FormLayoutConfig
from bizdesk.fields.validators import (
    ValidationErrors,
    Validator,
    dictionary_option_validators,
    error_message,
    run_validators,
    synthesize_validators,
)
from bizdesk.fields.values import CUSTOM_FIELDS_KEY, get_field_value, is_text_type, type_default


logger = logging.getLogger("bizdesk.forms")

FormMode = Literal["create", "edit", "view"]
FormState = Literal["loading", "ready", "editing", "validating", "saving", "saved", "error"]

Record = dict[str, Any]


def control_name(field: FieldSchema, option_value: str | None = None) -> str:
    return f"{field.name}_{option_value}" if option_value is not None else field.name


def initial_value(field: FieldSchema, record: Record | None = None) -> Any:
    if record is not None:
        value = get_field_value(record, field.name)
        if value is not None:
            return value

    default = field.default_value
    if default is not None and not (default == "" and not is_text_type(field.type)):
        return default
    return type_default(field.type)


def dictionary_option_value(field: FieldSchema, option_value: str, record: Record | None = None) -> Any:
    if record is None:
        return ""
    container = get_field_value(record, field.name)
    if not isinstance(container, dict):
        return ""
    value = container.get(option_value)
    return "" if value is None else value


def resolve_form_fields(fields: Sequence[FieldSchema], layout: FormLayoutConfig | None = None) -> list[FieldSchema]:
    """Active fields in display order, restricted to placed fields when a layout exists."""
    active = sorted((item for item in fields if item.is_active), key=lambda item: (item.form_order, item.id))
    if layout is None or not layout.has_positions():
        return active
    return [item for item in active if item.id in layout.fields]


@dataclass
class FormControl:
    name: str
    field: FieldSchema
    initial_value: Any
    validators: list[Validator] = field(default_factory=list)
    option_value: str | None = None
    disabled: bool = False

    def validate(self, value: Any) -> ValidationErrors | None:
        if self.disabled:
            return None
        return run_validators(self.validators, value)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "field_id": self.field.id,
            "label": self.field.label,
            "type": self.field.type,
            "option_value": self.option_value,
            "initial_value": self.initial_value,
            "required": self.field.validation.required,
            "disabled": self.disabled,
            "placeholder": self.field.placeholder,
            "help_text": self.field.help_text,
            "form_width": self.field.form_width,
            "options": [option.model_dump() for option in self.field.options],
        }


@dataclass
class FormPayload:
    default_fields: dict[str, Any] = field(default_factory=dict)
    custom_fields: dict[str, Any] = field(default_factory=dict)

    def to_record_data(self, mode: FormMode, existing: Record | None = None) -> dict[str, Any]:
        data = dict(self.default_fields)
        custom: dict[str, Any] = {}
        if mode == "edit" and existing is not None:
            custom.update(existing.get(CUSTOM_FIELDS_KEY) or {})
        custom.update(self.custom_fields)
        data[CUSTOM_FIELDS_KEY] = custom
        return data


@dataclass(frozen=True)
class PlacedField:
    field: FieldSchema
    row: int
    col: int
    col_span: int


@dataclass
class FormGrid:
    rows: list[list[PlacedField]]
    unplaced: list[FieldSchema]
    columns: int
    spacing: str
    buttons: FormButtonsConfig

    def describe(self) -> dict[str, Any]:
        return {
            "columns": self.columns,
            "spacing": self.spacing,
            "rows": [
                [
                    {"field_id": item.field.id, "name": item.field.name, "row": item.row, "col": item.col, "col_span": item.col_span}
                    for item in row
                ]
                for row in self.rows
            ],
            "unplaced": [item.id for item in self.unplaced],
            "buttons": self.buttons.model_dump(),
        }


def layout_rows(fields: Sequence[FieldSchema], layout: FormLayoutConfig | None = None) -> FormGrid:
    """Group placed fields into rows ordered by ``(row, col)``.

    Layout entries for unknown fields are skipped. Fields without a position
    land in ``unplaced`` in their display order.
    """
    if layout is None:
        return FormGrid(rows=[], unplaced=list(fields), columns=2, spacing="normal", buttons=FormButtonsConfig())

    by_id = {item.id: item for item in fields}
    placed: list[PlacedField] = []
    for field_id, position in layout.fields.items():
        schema = by_id.get(field_id)
        if schema is None:
            continue
        placed.append(
            PlacedField(
                field=schema,
                row=position.row,
                col=position.col,
                col_span=min(position.col_span, max(layout.columns, 1)),
            )
        )
    placed.sort(key=lambda item: (item.row, item.col))

    rows: list[list[PlacedField]] = []
    current_row: int | None = None
    for item in placed:
        if item.row != current_row:
            rows.append([])
            current_row = item.row
        rows[-1].append(item)

    unplaced = [item for item in fields if item.id not in layout.fields]
    return FormGrid(
        rows=rows,
        unplaced=unplaced,
        columns=layout.columns,
        spacing=layout.spacing,
        buttons=layout.buttons,
    )


@dataclass
class DynamicForm:
    fields: list[FieldSchema]
    controls: dict[str, FormControl]
    mode: FormMode = "create"
    layout: FormLayoutConfig | None = None

    def initial_values(self) -> dict[str, Any]:
        return {name: control.initial_value for name, control in self.controls.items()}

    def _merged(self, values: dict[str, Any]) -> dict[str, Any]:
        return {**self.initial_values(), **{key: value for key, value in values.items() if key in self.controls}}

    def validate(self, values: dict[str, Any]) -> dict[str, ValidationErrors]:
        if self.mode == "view":
            return {}
        current = self._merged(values)
        errors: dict[str, ValidationErrors] = {}
        for name, control in self.controls.items():
            result = control.validate(current.get(name))
            if result:
                errors[name] = result
        return errors

    def error_messages(self, errors: dict[str, ValidationErrors]) -> dict[str, str]:
        return {name: error_message(result, self.controls[name].field.label) for name, result in errors.items()}

    def reconstruct_payload(self, values: dict[str, Any]) -> FormPayload:
        current = self._merged(values)
        payload = FormPayload()
        for schema in self.fields:
            if schema.type == "dictionary":
                if not schema.options:
                    continue
                value: Any = {}
                for option in schema.options:
                    sub_value = current.get(control_name(schema, option.value))
                    value[option.value] = "" if sub_value is None else sub_value
            else:
                value = current.get(schema.name)
            bucket = payload.default_fields if schema.is_default else payload.custom_fields
            bucket[schema.name] = value
        return payload

    def grid(self) -> FormGrid:
        return layout_rows(self.fields, self.layout)

    def describe(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "controls": [control.describe() for control in self.controls.values()],
            "layout": self.grid().describe(),
        }


def build_form(
    fields: Sequence[FieldSchema],
    layout: FormLayoutConfig | None = None,
    record: Record | None = None,
    mode: FormMode = "create",
) -> DynamicForm:
    resolved = resolve_form_fields(fields, layout)
    disabled = mode == "view"
    controls: dict[str, FormControl] = {}

    for schema in resolved:
        if schema.type == "dictionary":
            for option in schema.options:
                name = control_name(schema, option.value)
                controls[name] = FormControl(
                    name=name,
                    field=schema,
                    option_value=option.value,
                    initial_value=dictionary_option_value(schema, option.value, record),
                    validators=dictionary_option_validators(schema),
                    disabled=disabled,
                )
            continue

        controls[schema.name] = FormControl(
            name=schema.name,
            field=schema,
            initial_value=initial_value(schema, record),
            validators=synthesize_validators(schema),
            disabled=disabled,
        )

    return DynamicForm(fields=resolved, controls=controls, mode=mode, layout=layout)


Saver = Callable[[FormPayload], Awaitable[Any]]

_ALLOWED: dict[str, set[str]] = {
    "load": {"loading"},
    "edit": {"ready", "editing"},
    "validate": {"ready", "editing"},
    "submit": {"ready", "editing"},
    "retry": {"error"},
}


class FormSession:
    """Drive one form through ``loading -> ready -> editing <-> validating -> saving``.

    ``saving`` ends in ``saved`` or ``error``; ``retry`` goes from ``error``
    back to ``ready`` keeping the entered values.
    """

    def __init__(self, saver: Saver, mode: FormMode = "create") -> None:
        self._saver = saver
        self.mode = mode
        self.state: FormState = "loading"
        self.form: DynamicForm | None = None
        self.values: dict[str, Any] = {}
        self.errors: dict[str, ValidationErrors] = {}
        self.result: Any = None
        self.last_error: Exception | None = None

    def _require(self, action: str) -> DynamicForm:
        if self.state not in _ALLOWED[action]:
            raise FormStateError(self.state, action)
        if self.form is None and action != "load":
            raise FormStateError(self.state, action)
        return self.form  # type: ignore[return-value]

    @property
    def can_submit(self) -> bool:
        return self.mode != "view" and self.state in _ALLOWED["submit"]

    def load(self, form: DynamicForm) -> None:
        self._require("load")
        self.form = form
        self.mode = form.mode
        self.values = form.initial_values()
        self.state = "ready"

    def edit(self, name: str, value: Any) -> None:
        form = self._require("edit")
        control = form.controls.get(name)
        if control is None:
            return
        if control.disabled:
            raise FormStateError("disabled", f"edit {name}")
        self.values[name] = value
        self.state = "editing"

    def validate(self) -> dict[str, ValidationErrors]:
        form = self._require("validate")
        self.state = "validating"
        self.errors = form.validate(self.values)
        self.state = "editing"
        return self.errors

    async def submit(self) -> Any:
        if self.mode == "view":
            raise FormStateError("view", "submit")
        form = self._require("submit")

        errors = self.validate()
        if errors:
            raise ValidationFailedError(errors, form.error_messages(errors))

        self.state = "saving"
        try:
            self.result = await self._saver(form.reconstruct_payload(self.values))
        except Exception as exc:
            self.state = "error"
            self.last_error = exc
            logger.warning("form.save_failed", extra={"error": str(exc)})
            raise
        self.state = "saved"
        return self.result

    def retry(self) -> None:
        self._require("retry")
        self.last_error = None
        self.state = "ready"
