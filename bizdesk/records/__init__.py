from bizdesk.records.schemas import BulkItemError, BulkOperationResult, OperationResult
from bizdesk.records.service import RecordService

__all__ = ["BulkItemError", "BulkOperationResult", "OperationResult", "RecordService"]
