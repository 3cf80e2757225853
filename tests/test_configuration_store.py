from __future__ import annotations

import asyncio
from typing import Any

import pytest

from bizdesk.configuration.defaults import MODULE_DEFINITIONS
from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.configuration.service import ModuleConfigStore
from bizdesk.core.auth import CurrentUser, static_identity
from bizdesk.errors import (
    ConfigUnavailableError,
    DuplicateFieldError,
    FieldNotFoundError,
    LayoutValidationError,
    MutationFailedError,
    SystemFieldError,
    UnknownModuleError,
)
from bizdesk.fields.schemas import FieldPosition, FieldSchema, GridConfiguration
from bizdesk.storage.documents import InMemoryDocumentStore


class RecordingStore(InMemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.reads = 0
        self.writes = 0
        self.fail_reads = False
        self.fail_writes = False

    async def get_document(self, path: str) -> dict[str, Any] | None:
        self.reads += 1
        if self.fail_reads:
            raise ConnectionError("document store offline")
        return await super().get_document(path)

    async def set_document(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        if self.fail_writes:
            raise ConnectionError("write rejected")
        self.writes += 1
        await super().set_document(path, data, merge=merge)


DEFAULT_FIELDS = [
    FieldSchema.model_validate(
        {
            "id": "name",
            "name": "name",
            "label": "Name",
            "validation": {"required": True},
            "grid_config": {"show_in_grid": True, "grid_order": 1},
            "form_order": 0,
            "is_default": True,
            "is_system": True,
        }
    ),
    FieldSchema.model_validate(
        {
            "id": "email",
            "name": "email",
            "label": "Email",
            "type": "email",
            "grid_config": {"show_in_grid": True, "grid_order": 0},
            "form_order": 1,
            "is_default": True,
        }
    ),
    FieldSchema.model_validate(
        {
            "id": "notes",
            "name": "notes",
            "label": "Notes",
            "type": "textarea",
            "form_order": 2,
            "is_active": False,
        }
    ),
]


@pytest.fixture()
def documents() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def store(documents: RecordingStore) -> ModuleConfigStore:
    return ModuleConfigStore(
        module="clients",
        documents=documents,
        default_fields=DEFAULT_FIELDS,
        default_grid_config=GridConfiguration(items_per_page=10),
        identity=static_identity(CurrentUser(id="admin-1", role="admin")),
    )


def test_initialize_is_idempotent_and_reads_once(store: ModuleConfigStore, documents: RecordingStore) -> None:
    first = asyncio.run(store.initialize())
    second = asyncio.run(store.initialize())

    assert documents.reads == 1
    assert first == second
    assert store.loaded_with_defaults is False
    persisted = asyncio.run(documents.get_document("module_configs/clients"))
    assert persisted is not None
    assert [field["id"] for field in persisted["fields"]] == ["name", "email", "notes"]


def test_initialize_uses_persisted_document(documents: RecordingStore, store: ModuleConfigStore) -> None:
    stored = store.default_config().model_copy(update={"version": 7})
    asyncio.run(documents.set_document("module_configs/clients", stored.model_dump(mode="json")))

    config = asyncio.run(store.initialize())

    assert config.version == 7


def test_unavailable_store_falls_back_to_defaults(documents: RecordingStore, store: ModuleConfigStore) -> None:
    documents.fail_reads = True

    config = asyncio.run(store.initialize())

    assert store.loaded_with_defaults is True
    assert store.warning
    assert isinstance(store.load_error, ConfigUnavailableError)
    assert [field.id for field in config.fields] == ["name", "email", "notes"]


def test_active_fields_are_sorted_by_form_order_then_id(documents: RecordingStore) -> None:
    fields = [
        FieldSchema(id="b", name="b", label="B", form_order=1),
        FieldSchema(id="a", name="a", label="A", form_order=1),
        FieldSchema(id="c", name="c", label="C", form_order=0),
        FieldSchema(id="d", name="d", label="D", form_order=0, is_active=False),
    ]
    store = ModuleConfigStore("materials", documents, fields)
    asyncio.run(store.initialize())

    assert [field.id for field in store.get_active_fields()] == ["c", "a", "b"]
    assert [field.id for field in store.get_fields_in_use()] == ["c", "a", "b"]


def test_grid_fields_are_sorted_by_grid_order(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    assert [field.id for field in store.get_grid_fields()] == ["email", "name"]
    assert store.get_form_layout() is None


def test_update_field_persists_and_bumps_version(store: ModuleConfigStore, documents: RecordingStore) -> None:
    asyncio.run(store.initialize())

    updated = asyncio.run(store.update_field("email", {"label": "Work email"}))

    assert updated.label == "Work email"
    assert store.config.version == 2
    assert store.config.updated_by == "admin-1"
    persisted = asyncio.run(documents.get_document("module_configs/clients"))
    assert persisted is not None
    assert persisted["version"] == 2
    assert persisted["fields"][1]["label"] == "Work email"


def test_failed_mutation_leaves_cached_config_unchanged(store: ModuleConfigStore, documents: RecordingStore) -> None:
    asyncio.run(store.initialize())
    before = store.config
    documents.fail_writes = True

    with pytest.raises(MutationFailedError):
        asyncio.run(store.update_field("email", {"label": "Changed"}))

    assert store.config == before
    assert store.config.field_by_id("email").label == "Email"  # type: ignore[union-attr]
    assert store.config.version == 1


@pytest.mark.parametrize("columns", [1, 5])
def test_layout_columns_outside_range_are_rejected(
    store: ModuleConfigStore,
    documents: RecordingStore,
    columns: int,
) -> None:
    asyncio.run(store.initialize())
    writes = documents.writes

    with pytest.raises(LayoutValidationError):
        asyncio.run(store.save_form_layout({"columns": columns, "fields": {"name": {"row": 0, "col": 0}}}))

    assert documents.writes == writes
    assert store.get_form_layout() is None


def test_layout_requires_an_active_required_field(documents: RecordingStore) -> None:
    store = ModuleConfigStore("materials", documents, [FieldSchema(id="a", name="a", label="A")])
    asyncio.run(store.initialize())

    with pytest.raises(LayoutValidationError):
        asyncio.run(store.save_form_layout({"columns": 2}))


def test_save_form_layout(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    layout = asyncio.run(
        store.save_form_layout({"columns": 3, "spacing": "compact", "fields": {"name": {"row": 0, "col": 0, "col_span": 2}}})
    )

    assert layout.columns == 3
    assert store.get_form_layout() == layout


def test_reorder_fields_skips_unknown_ids(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    ordered = asyncio.run(store.reorder_fields(["email", "ghost", "name"]))

    assert [field.id for field in ordered] == ["email", "name"]
    assert store.config.field_by_id("email").form_order == 0  # type: ignore[union-attr]
    assert store.config.field_by_id("name").form_order == 2  # type: ignore[union-attr]


def test_toggle_field_active(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    activated = asyncio.run(store.toggle_field_active("notes", True))

    assert activated.is_active is True
    assert [field.id for field in store.get_active_fields()] == ["name", "email", "notes"]
    with pytest.raises(SystemFieldError):
        asyncio.run(store.toggle_field_active("name", False))
    with pytest.raises(FieldNotFoundError):
        asyncio.run(store.toggle_field_active("ghost", True))


def test_add_and_remove_custom_field(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())
    asyncio.run(store.save_form_layout({"columns": 2, "fields": {"name": {"row": 0, "col": 0}}}))

    created = asyncio.run(store.add_field({"name": "region", "label": "Region"}))

    assert created.id.startswith("field_")
    assert created.form_order == 3
    assert created.is_default is False
    assert created.is_system is False
    with pytest.raises(DuplicateFieldError):
        asyncio.run(store.add_field({"name": "region", "label": "Region again"}))

    layout = store.get_form_layout()
    assert layout is not None
    asyncio.run(
        store.save_form_layout(
            layout.model_copy(update={"fields": {**layout.fields, created.id: FieldPosition(row=1, col=0)}})
        )
    )
    asyncio.run(store.remove_field(created.id))

    assert store.config.field_by_id(created.id) is None
    assert created.id not in store.get_form_layout().fields  # type: ignore[union-attr]
    with pytest.raises(SystemFieldError):
        asyncio.run(store.remove_field("name"))
    with pytest.raises(FieldNotFoundError):
        asyncio.run(store.remove_field(created.id))


def test_update_grid_config_applies_partial_patch(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    grid = asyncio.run(store.update_grid_config({"items_per_page": 25, "sort_order": "desc"}))

    assert grid.items_per_page == 25
    assert grid.sort_order == "desc"
    assert grid.enable_search is True


def test_reset_to_defaults(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())
    asyncio.run(store.add_field({"name": "region", "label": "Region"}))

    config = asyncio.run(store.reset_to_defaults())

    assert [field.id for field in config.fields] == ["name", "email", "notes"]
    assert config.version == 3


def test_field_stats(store: ModuleConfigStore) -> None:
    asyncio.run(store.initialize())

    assert store.field_stats() == {
        "total": 3,
        "active": 2,
        "inactive": 1,
        "custom": 1,
        "system": 1,
        "in_grid": 2,
        "filterable": 0,
    }


def test_registry_builds_one_store_per_module() -> None:
    registry = ModuleRegistry(InMemoryDocumentStore())

    workers = asyncio.run(registry.initialized_store("workers"))

    assert registry.store("workers") is workers
    assert registry.modules == ["clients", "materials", "workers"]
    assert workers.config.grid_config.items_per_page == 25
    assert workers.config.grid_config.enable_export is False
    assert [field.name for field in workers.get_active_fields()] == [
        field.name for field in MODULE_DEFINITIONS["workers"].default_fields if field.is_active
    ]
    with pytest.raises(UnknownModuleError):
        registry.store("invoices")
