from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from bizdesk.fields.schemas import FieldSchema
from bizdesk.fields.values import format_field_value, get_field_value
from bizdesk.metrics import observe_export
from bizdesk.otel import get_tracer


logger = logging.getLogger("bizdesk.exporting")
tracer = get_tracer("bizdesk.exporting")

NOTHING_TO_EXPORT = "No data to export"


@dataclass(frozen=True)
class ExportResult:
    exported: bool
    message: str
    content: str = ""
    media_type: str = ""
    filename: str = ""
    row_count: int = 0


def export_filename(file_name: str, extension: str, today: date | None = None) -> str:
    stamp = (today or date.today()).isoformat()
    return f"{file_name}_{stamp}.{extension}"


def _nothing(module: str, export_format: str) -> ExportResult:
    observe_export(module, export_format, "empty")
    logger.info("export.empty", extra={"module_name": module, "format": export_format})
    return ExportResult(exported=False, message=NOTHING_TO_EXPORT)


def export_to_csv(
    records: Sequence[dict[str, Any]],
    visible_fields: Sequence[FieldSchema],
    file_name: str = "export",
    module: str = "",
    today: date | None = None,
) -> ExportResult:
    if not records:
        return _nothing(module, "csv")

    with tracer.start_as_current_span("bizdesk.export.csv") as span:
        span.set_attribute("module", module)
        span.set_attribute("row_count", len(records))

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow([field.label for field in visible_fields])
        for record in records:
            writer.writerow(
                [format_field_value(get_field_value(record, field.name), field) for field in visible_fields]
            )

    observe_export(module, "csv", "exported")
    logger.info("export.finished", extra={"module_name": module, "format": "csv", "row_count": len(records)})
    return ExportResult(
        exported=True,
        message=f"{len(records)} records exported",
        content=output.getvalue(),
        media_type="text/csv",
        filename=export_filename(file_name, "csv", today),
        row_count=len(records),
    )


def export_to_json(
    records: Sequence[dict[str, Any]],
    file_name: str = "export",
    module: str = "",
    today: date | None = None,
) -> ExportResult:
    if not records:
        return _nothing(module, "json")

    with tracer.start_as_current_span("bizdesk.export.json") as span:
        span.set_attribute("module", module)
        span.set_attribute("row_count", len(records))
        content = json.dumps(list(records), indent=2, default=str, ensure_ascii=False)

    observe_export(module, "json", "exported")
    logger.info("export.finished", extra={"module_name": module, "format": "json", "row_count": len(records)})
    return ExportResult(
        exported=True,
        message=f"{len(records)} records exported",
        content=content,
        media_type="application/json",
        filename=export_filename(file_name, "json", today),
        row_count=len(records),
    )
