from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Any

from bizdesk.core.auth import IdentityProvider, anonymous_identity, stamp_user
from bizdesk.errors import MutationFailedError, RecordNotFoundError
from bizdesk.fields.schemas import FieldSchema, utcnow
from bizdesk.fields.values import CUSTOM_FIELDS_KEY
from bizdesk.metrics import observe_bulk_delete
from bizdesk.records.schemas import BulkItemError, BulkOperationResult, OperationResult
from bizdesk.storage.documents import DocumentStore


logger = logging.getLogger("bizdesk.records")

_PROTECTED_KEYS = {"id", "created_at", "created_by"}


class RecordService:
    """Generic CRUD over one entity collection in the document store."""

    def __init__(
        self,
        collection: str,
        documents: DocumentStore,
        identity: IdentityProvider = anonymous_identity,
    ) -> None:
        self.collection = collection
        self._documents = documents
        self._identity = identity

    def _path(self, record_id: str) -> str:
        return f"{self.collection}/{record_id}"

    def _stamp(self, updated_by: str | None) -> str:
        return updated_by or stamp_user(self._identity)

    async def list_records(self) -> list[dict[str, Any]]:
        return await self._documents.query_collection(self.collection)

    async def get_record(self, record_id: str) -> dict[str, Any]:
        document = await self._documents.get_document(self._path(record_id))
        if document is None:
            raise RecordNotFoundError(record_id)
        return {"id": record_id, **document}

    async def create_record(
        self,
        data: dict[str, Any],
        fields: Sequence[FieldSchema] = (),
        updated_by: str | None = None,
    ) -> OperationResult:
        record = {key: value for key, value in data.items() if key not in _PROTECTED_KEYS}
        custom = dict(record.get(CUSTOM_FIELDS_KEY) or {})

        for field in fields:
            if not field.is_active or field.default_value is None:
                continue
            if field.is_default:
                if record.get(field.name) is None:
                    record[field.name] = field.default_value
            elif custom.get(field.name) is None:
                custom[field.name] = field.default_value

        user = self._stamp(updated_by)
        now = utcnow().isoformat()
        record[CUSTOM_FIELDS_KEY] = custom
        record.setdefault("is_active", True)
        record.update({"created_at": now, "updated_at": now, "created_by": user, "updated_by": user})

        record_id = uuid.uuid4().hex
        try:
            await self._documents.set_document(self._path(record_id), record)
        except Exception as exc:
            logger.warning("record.create_failed", extra={"module_name": self.collection, "error": str(exc)})
            raise MutationFailedError("create_record", str(exc)) from exc

        logger.info("record.created", extra={"module_name": self.collection, "record_id": record_id})
        return OperationResult(success=True, message="Record created", data={"id": record_id, **record})

    async def update_record(
        self,
        record_id: str,
        data: dict[str, Any],
        updated_by: str | None = None,
    ) -> OperationResult:
        await self.get_record(record_id)
        # Explicit None clears a value; keys absent from ``data`` are left untouched.
        patch = {key: value for key, value in data.items() if key not in _PROTECTED_KEYS}
        patch["updated_at"] = utcnow().isoformat()
        patch["updated_by"] = self._stamp(updated_by)

        try:
            await self._documents.set_document(self._path(record_id), patch, merge=True)
        except Exception as exc:
            logger.warning(
                "record.update_failed",
                extra={"module_name": self.collection, "record_id": record_id, "error": str(exc)},
            )
            raise MutationFailedError("update_record", str(exc)) from exc

        logger.info("record.updated", extra={"module_name": self.collection, "record_id": record_id})
        return OperationResult(success=True, message="Record updated", data=await self.get_record(record_id))

    async def delete_record(self, record_id: str) -> OperationResult:
        path = self._path(record_id)
        try:
            exists = await self._documents.get_document(path) is not None
            if exists:
                await self._documents.delete_document(path)
        except Exception as exc:
            logger.warning(
                "record.delete_failed",
                extra={"module_name": self.collection, "record_id": record_id, "error": str(exc)},
            )
            raise MutationFailedError("delete_record", str(exc)) from exc
        if not exists:
            raise RecordNotFoundError(record_id)

        logger.info("record.deleted", extra={"module_name": self.collection, "record_id": record_id})
        return OperationResult(success=True, message="Record deleted", data={"id": record_id})

    async def delete_records(self, record_ids: Sequence[str]) -> BulkOperationResult:
        """Delete one id at a time; failures are collected, successes are kept."""
        success_count = 0
        errors: list[BulkItemError] = []
        for record_id in record_ids:
            try:
                await self.delete_record(record_id)
            except (MutationFailedError, RecordNotFoundError) as exc:
                errors.append(BulkItemError(id=record_id, error=str(exc)))
            else:
                success_count += 1

        failure_count = len(errors)
        if failure_count:
            message = f"{success_count} deleted, {failure_count} failed"
        else:
            message = f"{success_count} records deleted"

        observe_bulk_delete(self.collection, success_count, failure_count)
        logger.info(
            "record.bulk_deleted",
            extra={
                "module_name": self.collection,
                "success_count": success_count,
                "failure_count": failure_count,
            },
        )
        return BulkOperationResult(
            success=failure_count == 0,
            message=message,
            success_count=success_count,
            failure_count=failure_count,
            errors=errors,
        )

    async def toggle_active(self, record_id: str, is_active: bool, updated_by: str | None = None) -> OperationResult:
        return await self.update_record(record_id, {"is_active": is_active}, updated_by=updated_by)
