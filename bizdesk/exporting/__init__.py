from bizdesk.exporting.service import NOTHING_TO_EXPORT, ExportResult, export_filename, export_to_csv, export_to_json

__all__ = ["NOTHING_TO_EXPORT", "ExportResult", "export_filename", "export_to_csv", "export_to_json"]
