from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from opentelemetry.trace import Status, StatusCode

from bizdesk.core.auth import IdentityProvider, anonymous_identity, stamp_user
from bizdesk.errors import (
    ConfigUnavailableError,
    DuplicateFieldError,
    FieldNotFoundError,
    LayoutValidationError,
    MutationFailedError,
    SystemFieldError,
)
from bizdesk.fields.schemas import (
    FieldSchema,
    FieldSchemaCreate,
    FieldSchemaUpdate,
    FormLayoutConfig,
    GridConfiguration,
    GridConfigurationUpdate,
    ModuleConfig,
    utcnow,
)
from bizdesk.metrics import observe_config_fallback, observe_config_mutation
from bizdesk.otel import get_tracer
from bizdesk.storage.documents import DocumentStore


logger = logging.getLogger("bizdesk.configuration")
tracer = get_tracer("bizdesk.configuration")

CONFIG_COLLECTION = "module_configs"
MIN_LAYOUT_COLUMNS = 2
MAX_LAYOUT_COLUMNS = 4

ConfigChange = Callable[[ModuleConfig], ModuleConfig]


def _ordered_by_form(fields: Iterable[FieldSchema]) -> list[FieldSchema]:
    return sorted(fields, key=lambda field: (field.form_order, field.id))


def _ordered_by_grid(fields: Iterable[FieldSchema]) -> list[FieldSchema]:
    return sorted(fields, key=lambda field: (field.grid_config.grid_order, field.id))


def _patch_field(field: FieldSchema, patch: dict[str, Any]) -> FieldSchema:
    return FieldSchema.model_validate({**field.model_dump(), **patch})


def _replace_field(config: ModuleConfig, updated: FieldSchema) -> ModuleConfig:
    fields = [updated if field.id == updated.id else field for field in config.fields]
    return config.model_copy(update={"fields": fields})


class ModuleConfigStore:
    """Cached, persisted schema configuration for one business module.

    Reads are served from the in-memory copy. Each mutation runs under the
    instance lock: compute a patched copy, persist it, then swap the cache.
    A failed write leaves the cache untouched. Writes are last-write-wins
    against the stored document.
    """

    def __init__(
        self,
        module: str,
        documents: DocumentStore,
        default_fields: Sequence[FieldSchema],
        default_grid_config: GridConfiguration | None = None,
        identity: IdentityProvider = anonymous_identity,
    ) -> None:
        self.module = module
        self._documents = documents
        self._default_fields = tuple(default_fields)
        self._default_grid_config = default_grid_config or GridConfiguration()
        self._identity = identity
        self._config: ModuleConfig | None = None
        self._initialized = False
        self._lock = asyncio.Lock()
        self.loaded_with_defaults = False
        self.warning: str | None = None
        self.load_error: ConfigUnavailableError | None = None

    @property
    def path(self) -> str:
        return f"{CONFIG_COLLECTION}/{self.module}"

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> ModuleConfig:
        if self._config is None:
            raise RuntimeError(f"configuration for '{self.module}' is not initialized")
        return self._config

    def default_config(self) -> ModuleConfig:
        return ModuleConfig(
            module=self.module,
            fields=list(self._default_fields),
            grid_config=self._default_grid_config.model_copy(),
        )

    async def initialize(self) -> ModuleConfig:
        if self._initialized:
            return self.config
        async with self._lock:
            if not self._initialized:
                await self._load()
        return self.config

    async def load_config(self) -> ModuleConfig:
        async with self._lock:
            await self._load()
        return self.config

    async def _load(self) -> None:
        try:
            document = await self._documents.get_document(self.path)
            if document is None:
                config = self.default_config()
                await self._documents.set_document(self.path, config.model_dump(mode="json"))
                logger.info(
                    "config.created_from_defaults",
                    extra={"module_name": self.module, "version": config.version},
                )
            else:
                config = ModuleConfig.model_validate(document)
        except Exception as exc:
            self._use_defaults(ConfigUnavailableError(f"{self.path}: {exc}"))
            return

        self._config = config
        self._initialized = True
        self.loaded_with_defaults = False
        self.warning = None
        self.load_error = None

    def _use_defaults(self, exc: ConfigUnavailableError) -> None:
        self._config = self.default_config()
        self._initialized = True
        self.loaded_with_defaults = True
        self.load_error = exc
        self.warning = f"Configuration for {self.module} could not be loaded; using defaults"
        observe_config_fallback(self.module)
        logger.warning(
            "config.unavailable",
            extra={"module_name": self.module, "error": str(exc)},
        )

    # reads

    def get_active_fields(self) -> list[FieldSchema]:
        return _ordered_by_form(field for field in self.config.fields if field.is_active)

    def get_fields_in_use(self) -> list[FieldSchema]:
        return self.get_active_fields()

    def get_grid_fields(self) -> list[FieldSchema]:
        return _ordered_by_grid(
            field for field in self.config.fields if field.is_active and field.grid_config.show_in_grid
        )

    def get_form_layout(self) -> FormLayoutConfig | None:
        return self.config.form_layout

    def get_field(self, field_id: str) -> FieldSchema:
        field = self.config.field_by_id(field_id)
        if field is None:
            raise FieldNotFoundError(field_id)
        return field

    def field_stats(self) -> dict[str, int]:
        fields = self.config.fields
        active = [field for field in fields if field.is_active]
        return {
            "total": len(fields),
            "active": len(active),
            "inactive": len(fields) - len(active),
            "custom": sum(1 for field in fields if not field.is_default),
            "system": sum(1 for field in fields if field.is_system),
            "in_grid": sum(1 for field in active if field.grid_config.show_in_grid),
            "filterable": sum(1 for field in active if field.grid_config.filterable),
        }

    # mutations

    async def _mutate(
        self,
        operation: str,
        change: ConfigChange,
        updated_by: str | None = None,
        field_id: str | None = None,
    ) -> ModuleConfig:
        await self.initialize()
        async with self._lock:
            current = self.config
            patched = change(current)
            updated = patched.model_copy(
                update={
                    "version": current.version + 1,
                    "updated_at": utcnow(),
                    "updated_by": updated_by or stamp_user(self._identity),
                }
            )

            with tracer.start_as_current_span("bizdesk.config.mutation") as span:
                span.set_attribute("module", self.module)
                span.set_attribute("operation", operation)
                span.set_attribute("version", updated.version)
                try:
                    await self._documents.set_document(self.path, updated.model_dump(mode="json"))
                except Exception as exc:
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    observe_config_mutation(self.module, operation, "failed")
                    logger.warning(
                        "config.mutation_failed",
                        extra={
                            "module_name": self.module,
                            "operation": operation,
                            "field_id": field_id,
                            "error": str(exc),
                        },
                    )
                    raise MutationFailedError(operation, str(exc)) from exc

            self._config = updated
            self.loaded_with_defaults = False
            self.warning = None
            self.load_error = None

        observe_config_mutation(self.module, operation, "succeeded")
        logger.info(
            "config.mutated",
            extra={
                "module_name": self.module,
                "operation": operation,
                "field_id": field_id,
                "version": updated.version,
            },
        )
        return updated

    async def add_field(
        self,
        dto: FieldSchemaCreate | dict[str, Any],
        updated_by: str | None = None,
    ) -> FieldSchema:
        payload = dto if isinstance(dto, FieldSchemaCreate) else FieldSchemaCreate.model_validate(dto)
        field_id = f"field_{uuid.uuid4().hex[:12]}"
        created: dict[str, FieldSchema] = {}

        def change(config: ModuleConfig) -> ModuleConfig:
            if any(field.name == payload.name for field in config.fields):
                raise DuplicateFieldError(payload.name)
            next_order = max((field.form_order for field in config.fields), default=-1) + 1
            field = FieldSchema.model_validate(
                {**payload.model_dump(), "id": field_id, "form_order": next_order, "is_system": False}
            )
            created["field"] = field
            return config.model_copy(update={"fields": [*config.fields, field]})

        await self._mutate("add_field", change, updated_by=updated_by, field_id=field_id)
        return created["field"]

    async def update_field(
        self,
        field_id: str,
        patch: FieldSchemaUpdate | dict[str, Any],
        updated_by: str | None = None,
    ) -> FieldSchema:
        dto = patch if isinstance(patch, FieldSchemaUpdate) else FieldSchemaUpdate.model_validate(patch)
        changes = dto.model_dump(exclude_unset=True)

        def change(config: ModuleConfig) -> ModuleConfig:
            field = config.field_by_id(field_id)
            if field is None:
                raise FieldNotFoundError(field_id)
            return _replace_field(config, _patch_field(field, changes))

        config = await self._mutate("update_field", change, updated_by=updated_by, field_id=field_id)
        return self._require(config, field_id)

    async def remove_field(self, field_id: str, updated_by: str | None = None) -> None:
        def change(config: ModuleConfig) -> ModuleConfig:
            field = config.field_by_id(field_id)
            if field is None:
                raise FieldNotFoundError(field_id)
            if field.is_system:
                raise SystemFieldError(field_id, "remove")
            update: dict[str, Any] = {"fields": [item for item in config.fields if item.id != field_id]}
            layout = config.form_layout
            if layout is not None and field_id in layout.fields:
                positions = {key: value for key, value in layout.fields.items() if key != field_id}
                update["form_layout"] = layout.model_copy(update={"fields": positions})
            return config.model_copy(update=update)

        await self._mutate("remove_field", change, updated_by=updated_by, field_id=field_id)

    async def reorder_fields(self, field_ids: Sequence[str], updated_by: str | None = None) -> list[FieldSchema]:
        positions = {field_id: index for index, field_id in enumerate(field_ids)}

        def change(config: ModuleConfig) -> ModuleConfig:
            fields = [
                field.model_copy(update={"form_order": positions[field.id]}) if field.id in positions else field
                for field in config.fields
            ]
            return config.model_copy(update={"fields": fields})

        await self._mutate("reorder_fields", change, updated_by=updated_by)
        return self.get_active_fields()

    async def toggle_field_active(
        self,
        field_id: str,
        is_active: bool,
        updated_by: str | None = None,
    ) -> FieldSchema:
        def change(config: ModuleConfig) -> ModuleConfig:
            field = config.field_by_id(field_id)
            if field is None:
                raise FieldNotFoundError(field_id)
            if field.is_system and not is_active:
                raise SystemFieldError(field_id, "deactivate")
            return _replace_field(config, field.model_copy(update={"is_active": is_active}))

        config = await self._mutate("toggle_field_active", change, updated_by=updated_by, field_id=field_id)
        return self._require(config, field_id)

    async def save_form_layout(
        self,
        layout: FormLayoutConfig | dict[str, Any],
        updated_by: str | None = None,
    ) -> FormLayoutConfig:
        value = layout if isinstance(layout, FormLayoutConfig) else FormLayoutConfig.model_validate(layout)
        if not MIN_LAYOUT_COLUMNS <= value.columns <= MAX_LAYOUT_COLUMNS:
            raise LayoutValidationError(
                f"columns must be between {MIN_LAYOUT_COLUMNS} and {MAX_LAYOUT_COLUMNS}, got {value.columns}"
            )

        def change(config: ModuleConfig) -> ModuleConfig:
            if not any(field.is_active and field.validation.required for field in config.fields):
                raise LayoutValidationError("at least one active field must be required")
            return config.model_copy(update={"form_layout": value})

        await self._mutate("save_form_layout", change, updated_by=updated_by)
        return value

    async def update_grid_config(
        self,
        patch: GridConfigurationUpdate | dict[str, Any],
        updated_by: str | None = None,
    ) -> GridConfiguration:
        dto = patch if isinstance(patch, GridConfigurationUpdate) else GridConfigurationUpdate.model_validate(patch)
        changes = dto.model_dump(exclude_unset=True, exclude_none=True)

        def change(config: ModuleConfig) -> ModuleConfig:
            grid = GridConfiguration.model_validate({**config.grid_config.model_dump(), **changes})
            return config.model_copy(update={"grid_config": grid})

        config = await self._mutate("update_grid_config", change, updated_by=updated_by)
        return config.grid_config

    async def reset_to_defaults(self, updated_by: str | None = None) -> ModuleConfig:
        def change(config: ModuleConfig) -> ModuleConfig:
            return self.default_config().model_copy(update={"created_at": config.created_at})

        return await self._mutate("reset_to_defaults", change, updated_by=updated_by)

    @staticmethod
    def _require(config: ModuleConfig, field_id: str) -> FieldSchema:
        field = config.field_by_id(field_id)
        if field is None:
            raise FieldNotFoundError(field_id)
        return field
