from __future__ import annotations

import json
import logging
from datetime import date

from bizdesk.exporting.service import NOTHING_TO_EXPORT, export_filename, export_to_csv, export_to_json
from bizdesk.fields.schemas import FieldSchema


FIELDS = [
    FieldSchema(id="name", name="name", label="Name", is_default=True),
    FieldSchema(id="field_vip", name="vip", label="VIP", type="checkbox"),
    FieldSchema(id="field_budget", name="budget", label="Budget", type="currency"),
]

TODAY = date(2026, 10, 19)


def test_empty_export_is_refused_with_message(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="bizdesk.exporting"):
        result = export_to_csv([], FIELDS, "clients", module="clients", today=TODAY)

    assert result.exported is False
    assert result.message == NOTHING_TO_EXPORT
    assert result.content == ""
    assert export_to_json([], "clients").exported is False
    record = next(item for item in caplog.records if item.getMessage() == "export.empty")
    assert getattr(record, "module_name") == "clients"


def test_csv_uses_labels_and_formatted_values() -> None:
    records = [
        {"id": "1", "name": 'Acme, "Main" Ltd', "custom_fields": {"vip": True, "budget": 1200}},
        {"id": "2", "name": "Beta", "custom_fields": {"vip": False}},
    ]

    result = export_to_csv(records, FIELDS, "clients", module="clients", today=TODAY)

    assert result.exported is True
    assert result.row_count == 2
    assert result.media_type == "text/csv"
    assert result.filename == "clients_2026-10-19.csv"
    assert result.content == 'Name,VIP,Budget\n"Acme, ""Main"" Ltd",Yes,1200.00\nBeta,No,\n'


def test_json_export_is_pretty_printed() -> None:
    records = [{"id": "1", "name": "Zoë", "custom_fields": {"budget": 10}}]

    result = export_to_json(records, "materials", module="materials", today=TODAY)

    assert result.filename == "materials_2026-10-19.json"
    assert result.media_type == "application/json"
    assert json.loads(result.content) == records
    assert '\n  {\n    "id": "1"' in result.content
    assert "Zoë" in result.content


def test_export_filename_defaults_to_today() -> None:
    assert export_filename("workers", "csv").startswith("workers_")
    assert export_filename("workers", "csv", date(2024, 1, 5)) == "workers_2024-01-05.csv"


def test_csv_keeps_every_significant_digit_of_numbers() -> None:
    quantity = FieldSchema(id="field_qty", name="qty", label="Qty", type="number")
    records = [{"qty": 1234.5678}, {"qty": 2500000.5}, {"qty": 0.00000015}, {"qty": 42.0}]

    result = export_to_csv(records, [quantity], "materials", module="materials", today=TODAY)

    assert result.content == "Qty\n1234.5678\n2500000.5\n0.00000015\n42\n"
