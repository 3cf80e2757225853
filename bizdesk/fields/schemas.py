from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


FieldType = Literal[
    "text",
    "number",
    "email",
    "phone",
    "select",
    "multiselect",
    "dictionary",
    "date",
    "datetime",
    "checkbox",
    "textarea",
    "url",
    "currency",
]
FormWidth = Literal["full", "half", "third"]
SortOrder = Literal["asc", "desc"]

OPTION_FIELD_TYPES = {"select", "multiselect", "dictionary"}
TEXT_FIELD_TYPES = {"text", "textarea", "email", "phone", "url"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldValidation(BaseModel):
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    email: bool = False
    url: bool = False
    min: float | None = None
    max: float | None = None


class FieldOption(BaseModel):
    value: str
    label: str
    color: str | None = None


class FieldGridConfig(BaseModel):
    show_in_grid: bool = False
    grid_order: int = 0
    grid_width: str | None = None
    sortable: bool = True
    filterable: bool = False


class FieldSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    label: str
    type: FieldType = "text"
    validation: FieldValidation = Field(default_factory=FieldValidation)
    options: list[FieldOption] = Field(default_factory=list)
    default_value: Any = None
    placeholder: str | None = None
    help_text: str | None = None
    grid_config: FieldGridConfig = Field(default_factory=FieldGridConfig)
    form_order: int = 0
    form_width: FormWidth = "half"
    is_default: bool = False
    is_active: bool = True
    is_system: bool = False

    @model_validator(mode="after")
    def validate_options(self) -> "FieldSchema":
        if self.type in OPTION_FIELD_TYPES and not self.options:
            raise ValueError(f"options required for {self.type} field '{self.name}'")
        return self

    def option_label(self, value: Any) -> str | None:
        for option in self.options:
            if option.value == value:
                return option.label
        return None


class GridConfiguration(BaseModel):
    items_per_page: int = Field(default=10, ge=1)
    sort_by: str = "name"
    sort_order: SortOrder = "asc"
    enable_search: bool = True
    enable_filters: bool = True
    enable_export: bool = True
    enable_bulk_actions: bool = True
    enable_column_selector: bool = True
    compact_mode: bool = False
    show_thumbnails: bool = False
    default_view: Literal["table", "cards"] = "table"


class FieldPosition(BaseModel):
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    col_span: int = Field(default=1, ge=1)


class FormButtonsConfig(BaseModel):
    position: Literal["left", "center", "right"] = "right"
    order: list[str] = Field(default_factory=lambda: ["save", "cancel"])
    style: Literal["inline", "stacked"] = "inline"
    show_labels: bool = True


class FormLayoutConfig(BaseModel):
    columns: int = 2
    spacing: Literal["compact", "normal", "spacious"] = "normal"
    fields: dict[str, FieldPosition] = Field(default_factory=dict)
    buttons: FormButtonsConfig = Field(default_factory=FormButtonsConfig)

    def has_positions(self) -> bool:
        return bool(self.fields)


class ModuleConfig(BaseModel):
    module: str
    fields: list[FieldSchema] = Field(default_factory=list)
    grid_config: GridConfiguration = Field(default_factory=GridConfiguration)
    form_layout: FormLayoutConfig | None = None
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    updated_by: str | None = None

    def field_by_id(self, field_id: str) -> FieldSchema | None:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None


class FieldSchemaCreate(BaseModel):
    name: str = Field(min_length=1, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    label: str = Field(min_length=1)
    type: FieldType = "text"
    validation: FieldValidation = Field(default_factory=FieldValidation)
    options: list[FieldOption] = Field(default_factory=list)
    default_value: Any = None
    placeholder: str | None = None
    help_text: str | None = None
    grid_config: FieldGridConfig = Field(default_factory=FieldGridConfig)
    form_width: FormWidth = "half"
    is_default: bool = False
    is_active: bool = True


class FieldSchemaUpdate(BaseModel):
    label: str | None = None
    type: FieldType | None = None
    validation: FieldValidation | None = None
    options: list[FieldOption] | None = None
    default_value: Any = None
    placeholder: str | None = None
    help_text: str | None = None
    grid_config: FieldGridConfig | None = None
    form_order: int | None = None
    form_width: FormWidth | None = None


class GridConfigurationUpdate(BaseModel):
    items_per_page: int | None = Field(default=None, ge=1)
    sort_by: str | None = None
    sort_order: SortOrder | None = None
    enable_search: bool | None = None
    enable_filters: bool | None = None
    enable_export: bool | None = None
    enable_bulk_actions: bool | None = None
    enable_column_selector: bool | None = None
    compact_mode: bool | None = None
    show_thumbnails: bool | None = None
    default_view: Literal["table", "cards"] | None = None


class FieldOrderUpdate(BaseModel):
    field_ids: list[str] = Field(min_length=1)


class FieldActiveUpdate(BaseModel):
    is_active: bool
