from __future__ import annotations

import dataclasses
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from bizdesk.api.deps import get_column_storage, get_registry, require_admin
from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.configuration.service import ModuleConfigStore
from bizdesk.context import get_correlation_id
from bizdesk.core.auth import CurrentUser, get_current_user
from bizdesk.core.config import get_settings
from bizdesk.errors import (
    BizdeskError,
    DuplicateFieldError,
    FieldNotFoundError,
    FormStateError,
    LayoutValidationError,
    MutationFailedError,
    RecordNotFoundError,
    SystemFieldError,
    UnknownModuleError,
    ValidationFailedError,
)
from bizdesk.exporting.service import export_to_csv, export_to_json
from bizdesk.fields.schemas import (
    FieldActiveUpdate,
    FieldOrderUpdate,
    FieldSchemaCreate,
    FieldSchemaUpdate,
    FormLayoutConfig,
    GridConfigurationUpdate,
)
from bizdesk.forms.service import FormMode, FormPayload, FormSession, build_form
from bizdesk.listing.column_visibility import ColumnVisibilityStore, storage_key_for_user
from bizdesk.listing.service import ListView
from bizdesk.records.schemas import BulkDeleteRequest, RecordActiveUpdate, RecordFormSubmit
from bizdesk.records.service import RecordService

router = APIRouter(prefix="/api/modules/{module}", tags=["modules"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=get_correlation_id() or getattr(request.state, "correlation_id", None),
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


_STATUS_BY_ERROR: list[tuple[type[BizdeskError], int]] = [
    (UnknownModuleError, status.HTTP_404_NOT_FOUND),
    (FieldNotFoundError, status.HTTP_404_NOT_FOUND),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateFieldError, status.HTTP_409_CONFLICT),
    (SystemFieldError, status.HTTP_409_CONFLICT),
    (FormStateError, status.HTTP_409_CONFLICT),
    (LayoutValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ValidationFailedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MutationFailedError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def failure_response(request: Request, exc: Exception, code: str) -> JSONResponse:
    if isinstance(exc, HTTPException):
        return error_response(request, status_code=exc.status_code, code=code, message=str(exc.detail), details=exc.detail)
    if isinstance(exc, ValidationError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=code,
            message="invalid field definition",
            details=exc.errors(include_url=False, include_context=False),
        )
    if isinstance(exc, ValidationFailedError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=exc.code.lower(),
            message=str(exc),
            details={"errors": exc.errors, "messages": exc.messages},
        )
    if isinstance(exc, BizdeskError):
        status_code = next(
            (mapped for error_type, mapped in _STATUS_BY_ERROR if isinstance(exc, error_type)),
            status.HTTP_400_BAD_REQUEST,
        )
        return error_response(request, status_code=status_code, code=exc.code.lower(), message=str(exc))
    raise exc


class ColumnsUpdate(BaseModel):
    column_ids: list[str] = Field(default_factory=list)


@dataclass
class ListQuery:
    search: str | None = None
    sort: str | None = None
    direction: Literal["asc", "desc"] | None = None
    page: int = 0
    page_size: int | None = None
    filters: list[str] = dataclasses.field(default_factory=list)


def list_query(
    search: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    direction: Literal["asc", "desc"] | None = Query(default=None),
    page: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, ge=1),
    filters: list[str] | None = Query(default=None, alias="filter"),
) -> ListQuery:
    return ListQuery(
        search=search,
        sort=sort,
        direction=direction,
        page=page,
        page_size=page_size,
        filters=filters or [],
    )


def _user_id(user: CurrentUser | None) -> str | None:
    return user.id if user is not None else None


async def _store(registry: ModuleRegistry, module: str) -> ModuleConfigStore:
    return await registry.initialized_store(module)


def _records(registry: ModuleRegistry, module: str) -> RecordService:
    definition = registry.definition(module)
    return RecordService(definition.collection, registry.documents)


def _config_body(store: ModuleConfigStore) -> dict[str, Any]:
    return {
        "config": store.config.model_dump(mode="json"),
        "active_fields": [field.id for field in store.get_active_fields()],
        "grid_fields": [field.id for field in store.get_grid_fields()],
        "stats": store.field_stats(),
        "loaded_with_defaults": store.loaded_with_defaults,
        "warning": store.warning,
    }


async def _list_view(
    registry: ModuleRegistry,
    module: str,
    query: ListQuery,
    storage: MutableMapping[str, str],
    user: CurrentUser | None,
) -> tuple[ModuleConfigStore, ListView]:
    store = await _store(registry, module)
    definition = registry.definition(module)
    records = await _records(registry, module).list_records()
    adapter = dataclasses.replace(
        definition.adapter,
        storage_key=storage_key_for_user(definition.adapter.storage_key, _user_id(user)),
    )
    view = ListView(
        adapter=adapter,
        fields=store.config.fields,
        grid_config=store.config.grid_config,
        records=records,
        column_store=ColumnVisibilityStore(storage),
    )

    if query.page_size is not None:
        view.change_page_size(min(query.page_size, get_settings().max_page_size))
    if query.search:
        view.on_search(query.search)
    for raw in query.filters:
        name, _, value = raw.partition(":")
        if name:
            view.select_filter(name, value)
    if query.sort:
        view.set_sort(query.sort, query.direction or "asc")
    elif query.direction:
        view.set_sort(view.state.sort.field, query.direction)
    if query.page:
        view.go_to_page(query.page)
    return store, view


# configuration


@router.get("/config")
async def get_config(
    request: Request,
    module: str,
    registry: ModuleRegistry = Depends(get_registry),
) -> Any:
    try:
        store = await _store(registry, module)
        return _config_body(store)
    except BizdeskError as exc:
        return failure_response(request, exc, "module_config_get_failed")


@router.post("/config/fields", status_code=status.HTTP_201_CREATED)
async def add_field(
    request: Request,
    module: str,
    dto: FieldSchemaCreate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        field = await store.add_field(dto, updated_by=admin.id)
        return field.model_dump(mode="json")
    except (BizdeskError, HTTPException, ValidationError) as exc:
        return failure_response(request, exc, "module_field_create_failed")


@router.patch("/config/fields/{field_id}")
async def update_field(
    request: Request,
    module: str,
    field_id: str,
    dto: FieldSchemaUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        field = await store.update_field(field_id, dto, updated_by=admin.id)
        return field.model_dump(mode="json")
    except (BizdeskError, HTTPException, ValidationError) as exc:
        return failure_response(request, exc, "module_field_update_failed")


@router.delete("/config/fields/{field_id}")
async def remove_field(
    request: Request,
    module: str,
    field_id: str,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        await store.remove_field(field_id, updated_by=admin.id)
        return {"status": "deleted", "field_id": field_id}
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_field_delete_failed")


@router.put("/config/fields/order")
async def reorder_fields(
    request: Request,
    module: str,
    dto: FieldOrderUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        fields = await store.reorder_fields(dto.field_ids, updated_by=admin.id)
        return {"active_fields": [field.id for field in fields], "version": store.config.version}
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_field_reorder_failed")


@router.put("/config/fields/{field_id}/active")
async def toggle_field_active(
    request: Request,
    module: str,
    field_id: str,
    dto: FieldActiveUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        field = await store.toggle_field_active(field_id, dto.is_active, updated_by=admin.id)
        return field.model_dump(mode="json")
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_field_toggle_failed")


@router.put("/config/layout")
async def save_form_layout(
    request: Request,
    module: str,
    layout: FormLayoutConfig,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        saved = await store.save_form_layout(layout, updated_by=admin.id)
        return saved.model_dump(mode="json")
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_layout_save_failed")


@router.patch("/config/grid")
async def update_grid_config(
    request: Request,
    module: str,
    dto: GridConfigurationUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        grid = await store.update_grid_config(dto, updated_by=admin.id)
        return grid.model_dump(mode="json")
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_grid_update_failed")


@router.post("/config/reset")
async def reset_config(
    request: Request,
    module: str,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        admin = require_admin(user)
        store = await _store(registry, module)
        await store.reset_to_defaults(updated_by=admin.id)
        return _config_body(store)
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_config_reset_failed")


# records


@router.get("/records")
async def list_records(
    request: Request,
    module: str,
    query: ListQuery = Depends(list_query),
    registry: ModuleRegistry = Depends(get_registry),
    storage: MutableMapping[str, str] = Depends(get_column_storage),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        store, view = await _list_view(registry, module, query, storage, user)
        return {**view.view_model(), "warning": store.warning}
    except BizdeskError as exc:
        return failure_response(request, exc, "module_records_list_failed")


@router.get("/records/{record_id}")
async def get_record(
    request: Request,
    module: str,
    record_id: str,
    registry: ModuleRegistry = Depends(get_registry),
) -> Any:
    try:
        registry.definition(module)
        return await _records(registry, module).get_record(record_id)
    except BizdeskError as exc:
        return failure_response(request, exc, "module_record_get_failed")


async def _submit_form(
    store: ModuleConfigStore,
    mode: FormMode,
    values: dict[str, Any],
    save: Any,
    record: dict[str, Any] | None = None,
) -> Any:
    form = build_form(store.get_active_fields(), store.get_form_layout(), record=record, mode=mode)
    session = FormSession(saver=save, mode=mode)
    session.load(form)
    for name, value in values.items():
        session.edit(name, value)
    return await session.submit()


@router.post("/records", status_code=status.HTTP_201_CREATED)
async def create_record(
    request: Request,
    module: str,
    dto: RecordFormSubmit,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        store = await _store(registry, module)
        records = _records(registry, module)

        async def save(payload: FormPayload) -> Any:
            return await records.create_record(
                payload.to_record_data("create"),
                store.get_active_fields(),
                updated_by=_user_id(user),
            )

        result = await _submit_form(store, "create", dto.values, save)
        return result.model_dump(mode="json")
    except BizdeskError as exc:
        return failure_response(request, exc, "module_record_create_failed")


@router.put("/records/{record_id}")
async def update_record(
    request: Request,
    module: str,
    record_id: str,
    dto: RecordFormSubmit,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        store = await _store(registry, module)
        records = _records(registry, module)
        existing = await records.get_record(record_id)

        async def save(payload: FormPayload) -> Any:
            return await records.update_record(
                record_id,
                payload.to_record_data("edit", existing),
                updated_by=_user_id(user),
            )

        result = await _submit_form(store, "edit", dto.values, save, record=existing)
        return result.model_dump(mode="json")
    except BizdeskError as exc:
        return failure_response(request, exc, "module_record_update_failed")


@router.post("/records/bulk-delete")
async def bulk_delete_records(
    request: Request,
    module: str,
    dto: BulkDeleteRequest,
    registry: ModuleRegistry = Depends(get_registry),
) -> Any:
    try:
        registry.definition(module)
        result = await _records(registry, module).delete_records(dto.ids)
        return result.model_dump(mode="json")
    except BizdeskError as exc:
        return failure_response(request, exc, "module_records_bulk_delete_failed")


@router.delete("/records/{record_id}")
async def delete_record(
    request: Request,
    module: str,
    record_id: str,
    registry: ModuleRegistry = Depends(get_registry),
) -> Any:
    try:
        registry.definition(module)
        result = await _records(registry, module).delete_record(record_id)
        return result.model_dump(mode="json")
    except BizdeskError as exc:
        return failure_response(request, exc, "module_record_delete_failed")


@router.put("/records/{record_id}/active")
async def toggle_record_active(
    request: Request,
    module: str,
    record_id: str,
    dto: RecordActiveUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        registry.definition(module)
        result = await _records(registry, module).toggle_active(record_id, dto.is_active, updated_by=_user_id(user))
        return result.model_dump(mode="json")
    except BizdeskError as exc:
        return failure_response(request, exc, "module_record_toggle_failed")


# forms, export, columns


@router.get("/form")
async def get_form(
    request: Request,
    module: str,
    record_id: str | None = Query(default=None),
    mode: Literal["create", "edit", "view"] | None = Query(default=None),
    registry: ModuleRegistry = Depends(get_registry),
) -> Any:
    try:
        store = await _store(registry, module)
        record = await _records(registry, module).get_record(record_id) if record_id else None
        resolved_mode: FormMode = mode or ("edit" if record is not None else "create")
        form = build_form(store.get_active_fields(), store.get_form_layout(), record=record, mode=resolved_mode)
        return form.describe()
    except BizdeskError as exc:
        return failure_response(request, exc, "module_form_get_failed")


@router.get("/export")
async def export_records(
    request: Request,
    module: str,
    export_format: Literal["csv", "json"] = Query(default="csv", alias="format"),
    query: ListQuery = Depends(list_query),
    registry: ModuleRegistry = Depends(get_registry),
    storage: MutableMapping[str, str] = Depends(get_column_storage),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        store, view = await _list_view(registry, module, query, storage, user)
        if not store.config.grid_config.enable_export:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Export is disabled for {module}")

        rows = view.filtered()
        if export_format == "json":
            result = export_to_json(rows, file_name=module, module=module)
        else:
            result = export_to_csv(rows, view.columns(), file_name=module, module=module)

        if not result.exported:
            return {"exported": False, "message": result.message}
        return Response(
            content=result.content,
            media_type=result.media_type,
            headers={"content-disposition": f'attachment; filename="{result.filename}"'},
        )
    except (BizdeskError, HTTPException) as exc:
        return failure_response(request, exc, "module_export_failed")


@router.get("/columns")
async def get_columns(
    request: Request,
    module: str,
    registry: ModuleRegistry = Depends(get_registry),
    storage: MutableMapping[str, str] = Depends(get_column_storage),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        _, view = await _list_view(registry, module, ListQuery(), storage, user)
        return {"visible_column_ids": view.state.visible_column_ids, "columns": view.column_options()}
    except BizdeskError as exc:
        return failure_response(request, exc, "module_columns_get_failed")


@router.put("/columns")
async def set_columns(
    request: Request,
    module: str,
    dto: ColumnsUpdate,
    registry: ModuleRegistry = Depends(get_registry),
    storage: MutableMapping[str, str] = Depends(get_column_storage),
    user: CurrentUser | None = Depends(get_current_user),
) -> Any:
    try:
        _, view = await _list_view(registry, module, ListQuery(), storage, user)
        if dto.column_ids:
            view.set_visible_columns(dto.column_ids)
        else:
            view.reset_columns()
        return {"visible_column_ids": view.state.visible_column_ids, "columns": view.column_options()}
    except BizdeskError as exc:
        return failure_response(request, exc, "module_columns_update_failed")
