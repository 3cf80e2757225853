from __future__ import annotations

from collections.abc import MutableMapping
from functools import lru_cache

from fastapi import HTTPException, status

from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.core.auth import CurrentUser
from bizdesk.core.config import get_settings
from bizdesk.core.database import SessionLocal
from bizdesk.storage.documents import DocumentStore, InMemoryDocumentStore, SqlDocumentStore


@lru_cache
def get_document_store() -> DocumentStore:
    settings = get_settings()
    if settings.document_backend.lower() == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore(SessionLocal)


@lru_cache
def get_registry() -> ModuleRegistry:
    return ModuleRegistry(get_document_store())


_column_storage: dict[str, str] = {}


def get_column_storage() -> MutableMapping[str, str]:
    return _column_storage


def require_admin(user: CurrentUser | None) -> CurrentUser:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing role: {get_settings().admin_role}")
    return user
