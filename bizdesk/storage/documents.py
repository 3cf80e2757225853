from __future__ import annotations

import copy
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from bizdesk.storage.models import StoredDocument


@dataclass(frozen=True)
class QueryConstraint:
    field: str
    op: str
    value: Any

    def matches(self, document: dict[str, Any]) -> bool:
        current = document.get(self.field)
        if self.op == "==":
            return current == self.value
        if self.op == "!=":
            return current != self.value
        if self.op == "in":
            return current in self.value
        raise ValueError(f"unsupported query operator: {self.op}")


def where(field: str, op: str, value: Any) -> QueryConstraint:
    return QueryConstraint(field=field, op=op, value=value)


class DocumentStore(Protocol):
    async def get_document(self, path: str) -> dict[str, Any] | None: ...

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    async def delete_document(self, path: str) -> None: ...

    async def query_collection(
        self,
        collection: str,
        constraints: Sequence[QueryConstraint] = (),
    ) -> list[dict[str, Any]]: ...


def split_path(path: str) -> tuple[str, str]:
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"document path must be '<collection>/<id>': {path}")
    return collection, doc_id


def _json_safe(data: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(data, default=str))


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    async def get_document(self, path: str) -> dict[str, Any] | None:
        document = self._documents.get(path.strip("/"))
        return copy.deepcopy(document) if document is not None else None

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        key = path.strip("/")
        split_path(key)
        payload = _json_safe(data)
        existing = self._documents.get(key)
        if merge and existing is not None:
            payload = deep_merge(existing, payload)
        self._documents[key] = payload

    async def delete_document(self, path: str) -> None:
        self._documents.pop(path.strip("/"), None)

    async def query_collection(
        self,
        collection: str,
        constraints: Sequence[QueryConstraint] = (),
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for key, document in self._documents.items():
            doc_collection, doc_id = split_path(key)
            if doc_collection != collection.strip("/"):
                continue
            row = {"id": doc_id, **copy.deepcopy(document)}
            if all(constraint.matches(row) for constraint in constraints):
                results.append(row)
        return results

    def clear(self) -> None:
        self._documents.clear()


class SqlDocumentStore:
    """Document store backed by one SQLAlchemy table keyed by path.

    Every call is a single-document transaction; there are no cross-document
    transactions. Session work runs in the threadpool so the event loop never
    waits on database I/O.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def get_document(self, path: str) -> dict[str, Any] | None:
        return await run_in_threadpool(self._read, path.strip("/"))

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        key = path.strip("/")
        collection, _ = split_path(key)
        await run_in_threadpool(self._write, key, collection, _json_safe(data), merge)

    async def delete_document(self, path: str) -> None:
        await run_in_threadpool(self._delete, path.strip("/"))

    async def query_collection(
        self,
        collection: str,
        constraints: Sequence[QueryConstraint] = (),
    ) -> list[dict[str, Any]]:
        documents = await run_in_threadpool(self._scan, collection.strip("/"))
        return [document for document in documents if all(constraint.matches(document) for constraint in constraints)]

    def _read(self, key: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            row = session.get(StoredDocument, key)
            return copy.deepcopy(row.data) if row is not None else None

    def _write(self, key: str, collection: str, payload: dict[str, Any], merge: bool) -> None:
        with self._session_factory() as session:
            row = session.get(StoredDocument, key)
            if row is None:
                session.add(StoredDocument(path=key, collection=collection, data=payload))
            else:
                row.data = deep_merge(row.data, payload) if merge else payload
                session.add(row)
            session.commit()

    def _delete(self, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(StoredDocument, key)
            if row is not None:
                session.delete(row)
                session.commit()

    def _scan(self, collection: str) -> list[dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(StoredDocument)
                .where(StoredDocument.collection == collection)
                .order_by(StoredDocument.created_at.asc())
            ).all()
            return [{"id": split_path(row.path)[1], **copy.deepcopy(row.data)} for row in rows]
