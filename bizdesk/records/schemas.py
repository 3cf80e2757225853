from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    errors: list[str] = Field(default_factory=list)


class BulkItemError(BaseModel):
    id: str
    error: str


class BulkOperationResult(BaseModel):
    success: bool
    message: str
    success_count: int = 0
    failure_count: int = 0
    errors: list[BulkItemError] = Field(default_factory=list)


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class RecordActiveUpdate(BaseModel):
    is_active: bool


class RecordFormSubmit(BaseModel):
    """Raw form control values keyed by control name."""

    values: dict[str, Any] = Field(default_factory=dict)
