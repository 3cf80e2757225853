from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bizdesk.fields.schemas import FieldSchema, GridConfiguration
from bizdesk.listing.service import EntityAdapter

PHONE_PATTERN = r"^[+]?[(]?[0-9]{3}[)]?[-\s.]?[0-9]{3}[-\s.]?[0-9]{4,6}$"


def _field(name: str, label: str, order: int, **overrides: Any) -> FieldSchema:
    grid = overrides.pop("grid", {})
    return FieldSchema.model_validate(
        {
            "id": name,
            "name": name,
            "label": label,
            "form_order": order,
            "is_default": True,
            "grid_config": {"grid_order": order, **grid},
            **overrides,
        }
    )


@dataclass(frozen=True)
class ModuleDefinition:
    module: str
    collection: str
    adapter: EntityAdapter
    default_fields: tuple[FieldSchema, ...]
    default_grid_config: GridConfiguration


CLIENT_FIELDS = (
    _field(
        "name",
        "Name",
        0,
        validation={"required": True, "min_length": 2, "max_length": 100},
        placeholder="Client name",
        grid={"show_in_grid": True, "grid_width": "200px", "filterable": True},
        is_system=True,
    ),
    _field(
        "email",
        "Email",
        1,
        type="email",
        validation={"email": True},
        placeholder="client@example.com",
        grid={"show_in_grid": True, "grid_width": "220px"},
    ),
    _field(
        "phone",
        "Phone",
        2,
        type="phone",
        validation={"pattern": PHONE_PATTERN},
        placeholder="+1 234 567 8900",
        grid={"show_in_grid": True, "grid_width": "150px", "sortable": False},
    ),
    _field(
        "company",
        "Company",
        3,
        validation={"max_length": 150},
        grid={"show_in_grid": True, "grid_width": "180px", "filterable": True},
    ),
    _field(
        "address",
        "Address",
        4,
        type="textarea",
        validation={"max_length": 250},
        form_width="full",
        grid={"sortable": False},
    ),
    _field(
        "is_active",
        "Active",
        5,
        type="checkbox",
        default_value=True,
        grid={"show_in_grid": True, "grid_width": "100px", "filterable": True},
        is_system=True,
    ),
)

MATERIAL_FIELDS = (
    _field(
        "name",
        "Name",
        0,
        validation={"required": True, "min_length": 2, "max_length": 150},
        grid={"show_in_grid": True, "grid_width": "220px", "filterable": True},
        is_system=True,
    ),
    _field(
        "code",
        "Code",
        1,
        validation={"max_length": 50},
        grid={"show_in_grid": True, "grid_width": "120px", "filterable": True},
    ),
    _field(
        "description",
        "Description",
        2,
        type="textarea",
        validation={"max_length": 500},
        form_width="full",
        grid={"sortable": False},
    ),
    _field(
        "unit",
        "Unit",
        3,
        type="select",
        options=[
            {"value": "unit", "label": "Unit"},
            {"value": "m", "label": "Meter"},
            {"value": "m2", "label": "Square meter"},
            {"value": "kg", "label": "Kilogram"},
            {"value": "hour", "label": "Hour"},
        ],
        grid={"show_in_grid": True, "grid_width": "120px", "filterable": True},
    ),
    _field(
        "price",
        "Price",
        4,
        type="currency",
        validation={"min": 0},
        grid={"show_in_grid": True, "grid_width": "120px"},
    ),
    _field(
        "is_active",
        "Active",
        5,
        type="checkbox",
        default_value=True,
        grid={"show_in_grid": True, "grid_width": "100px", "filterable": True},
        is_system=True,
    ),
)

WORKER_FIELDS = (
    _field(
        "full_name",
        "Full name",
        0,
        validation={"required": True, "min_length": 2, "max_length": 150},
        placeholder="Worker full name",
        grid={"show_in_grid": True, "grid_width": "200px", "filterable": True},
        is_system=True,
    ),
    _field(
        "worker_type",
        "Worker type",
        1,
        type="select",
        validation={"required": True},
        options=[
            {"value": "internal", "label": "Employee", "color": "#2563eb"},
            {"value": "contractor", "label": "Contractor", "color": "#7c3aed"},
        ],
        grid={"show_in_grid": True, "grid_width": "150px", "filterable": True},
        is_system=True,
    ),
    _field(
        "phone",
        "Phone",
        2,
        type="phone",
        validation={"pattern": PHONE_PATTERN},
        grid={"show_in_grid": True, "grid_width": "150px", "sortable": False},
    ),
    _field(
        "id_or_license",
        "ID or license",
        3,
        validation={"max_length": 50},
        grid={"grid_width": "150px", "filterable": True},
    ),
    _field(
        "social_security",
        "Social security",
        4,
        validation={"max_length": 50},
        grid={"sortable": False},
        is_active=False,
    ),
    _field(
        "address",
        "Address",
        5,
        type="textarea",
        validation={"max_length": 250},
        form_width="full",
        grid={"sortable": False},
        is_active=False,
    ),
    _field(
        "company_name",
        "Company (contractor)",
        6,
        validation={"max_length": 150},
        help_text="Only applies to contractors",
        grid={"show_in_grid": True, "grid_width": "180px", "filterable": True},
    ),
    _field(
        "is_active",
        "Status",
        7,
        type="checkbox",
        default_value=True,
        grid={"show_in_grid": True, "grid_width": "100px", "filterable": True},
        is_system=True,
    ),
)


MODULE_DEFINITIONS: dict[str, ModuleDefinition] = {
    "clients": ModuleDefinition(
        module="clients",
        collection="clients",
        adapter=EntityAdapter(
            module="clients",
            search_fields=("name", "email", "phone"),
            storage_key="clients-visible-columns",
        ),
        default_fields=CLIENT_FIELDS,
        default_grid_config=GridConfiguration(sort_by="name"),
    ),
    "materials": ModuleDefinition(
        module="materials",
        collection="materials",
        adapter=EntityAdapter(
            module="materials",
            search_fields=("name", "code", "description"),
            storage_key="materials-visible-columns",
        ),
        default_fields=MATERIAL_FIELDS,
        default_grid_config=GridConfiguration(sort_by="name"),
    ),
    "workers": ModuleDefinition(
        module="workers",
        collection="workers",
        adapter=EntityAdapter(
            module="workers",
            search_fields=("full_name", "phone", "id_or_license"),
            storage_key="workers-visible-columns",
        ),
        default_fields=WORKER_FIELDS,
        default_grid_config=GridConfiguration(items_per_page=25, sort_by="full_name", enable_export=False),
    ),
}
