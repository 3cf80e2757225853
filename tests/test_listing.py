from __future__ import annotations

from typing import Any

import pytest

from bizdesk.core.events import EventBus, InternalEvent
from bizdesk.fields.schemas import FieldSchema, GridConfiguration
from bizdesk.listing.column_visibility import ColumnVisibilityStore
from bizdesk.listing.service import (
    EntityAdapter,
    ListView,
    SortState,
    apply_custom_filters,
    apply_search,
    paginate,
    sort_records,
    total_pages,
    unique_values_by_field,
)


STATUS_OPTIONS = [{"value": "active", "label": "Active"}, {"value": "inactive", "label": "Inactive"}]
TAG_OPTIONS = [{"value": "b2b", "label": "Business"}, {"value": "vip", "label": "Important"}]

FIELDS = [
    FieldSchema.model_validate(
        {
            "id": "name",
            "name": "name",
            "label": "Name",
            "is_default": True,
            "grid_config": {"show_in_grid": True, "grid_order": 0},
        }
    ),
    FieldSchema.model_validate(
        {
            "id": "status",
            "name": "status",
            "label": "Status",
            "type": "select",
            "options": STATUS_OPTIONS,
            "is_default": True,
            "grid_config": {"show_in_grid": True, "grid_order": 1, "filterable": True},
        }
    ),
    FieldSchema.model_validate(
        {"id": "age", "name": "age", "label": "Age", "type": "number", "grid_config": {"grid_order": 2}}
    ),
    FieldSchema.model_validate(
        {"id": "joined", "name": "joined", "label": "Joined", "type": "date", "grid_config": {"grid_order": 3}}
    ),
    FieldSchema.model_validate(
        {
            "id": "region",
            "name": "region",
            "label": "Region",
            "grid_config": {"show_in_grid": False, "grid_order": 4, "filterable": True},
        }
    ),
    FieldSchema.model_validate(
        {
            "id": "tags",
            "name": "tags",
            "label": "Tags",
            "type": "multiselect",
            "options": TAG_OPTIONS,
            "grid_config": {"grid_order": 5, "filterable": True},
        }
    ),
]

ADAPTER = EntityAdapter(module="clients", search_fields=("name", "email", "phone"), storage_key="clients-visible-columns")


def _scenario_records() -> list[dict[str, Any]]:
    return [
        {"id": "1", "name": "Bob", "status": "active"},
        {"id": "2", "name": "Ann", "status": "inactive"},
        {"id": "3", "name": "Cid", "status": "active"},
    ]


def _many_records(count: int) -> list[dict[str, Any]]:
    return [
        {
            "id": str(index),
            "name": f"Client {index:02d}",
            "status": "active" if index % 2 else "inactive",
            "custom_fields": {"age": index, "region": "North" if index % 3 else "South"},
        }
        for index in range(count)
    ]


def _view(records: list[dict[str, Any]], **kwargs: Any) -> ListView:
    grid = kwargs.pop("grid_config", GridConfiguration(items_per_page=10, sort_by="name"))
    return ListView(ADAPTER, FIELDS, grid, records, **kwargs)


def test_filter_then_sort_keeps_only_matching_records() -> None:
    filtered = apply_custom_filters(_scenario_records(), {"status": "active"})
    ordered = sort_records(filtered, SortState(field="name"), FIELDS)

    assert [record["name"] for record in ordered] == ["Bob", "Cid"]


def test_filter_sentinels_and_missing_values() -> None:
    records = _scenario_records() + [{"id": "4", "name": "Dee"}]

    assert len(apply_custom_filters(records, {"status": "all"})) == 4
    assert len(apply_custom_filters(records, {"status": ""})) == 4
    assert len(apply_custom_filters(records, {"status": None})) == 4
    assert [record["id"] for record in apply_custom_filters(records, {"status": "inactive"})] == ["2"]


def test_filter_compares_stringified_values() -> None:
    records = [{"id": "1", "is_active": True, "custom_fields": {"age": 30}}, {"id": "2", "is_active": False}]

    assert [record["id"] for record in apply_custom_filters(records, {"is_active": "true"})] == ["1"]
    assert [record["id"] for record in apply_custom_filters(records, {"age": "30"})] == ["1"]


def test_selecting_then_clearing_a_filter_matches_no_filter() -> None:
    view = _view(_many_records(12))
    baseline = view.filtered()

    view.select_filter("status", "active")
    assert len(view.filtered()) == 6
    view.select_filter("status", None)

    assert view.filtered() == baseline
    assert view.active_filter_count == 0


def test_search_covers_base_and_filterable_custom_fields() -> None:
    records = [
        {"id": "1", "name": "Bob", "email": "bob@example.com"},
        {"id": "2", "name": "Ann", "phone": "555-0100", "custom_fields": {"region": "North"}},
        {"id": "3", "name": "Cid", "custom_fields": {"age": 42}},
    ]

    assert [record["id"] for record in apply_search(records, "BOB", ADAPTER.search_fields, FIELDS)] == ["1"]
    assert [record["id"] for record in apply_search(records, "0100", ADAPTER.search_fields, FIELDS)] == ["2"]
    assert [record["id"] for record in apply_search(records, "nor", ADAPTER.search_fields, FIELDS)] == ["2"]
    assert apply_search(records, "42", ADAPTER.search_fields, FIELDS) == []
    assert len(apply_search(records, "  ", ADAPTER.search_fields, FIELDS)) == 3


def test_sort_is_numeric_for_number_fields() -> None:
    records = [
        {"id": "a", "custom_fields": {"age": 10}},
        {"id": "b", "custom_fields": {"age": 9}},
        {"id": "c", "custom_fields": {"age": 100}},
        {"id": "d"},
    ]

    ordered = sort_records(records, SortState(field="age"), FIELDS)

    assert [record["id"] for record in ordered] == ["d", "b", "a", "c"]


def test_sort_by_date_and_unknown_field() -> None:
    records = [
        {"id": "a", "joined": "2024-02-01", "city": "oslo"},
        {"id": "b", "joined": "2023-12-31", "city": "Bergen"},
    ]

    assert [record["id"] for record in sort_records(records, SortState(field="joined"), FIELDS)] == ["b", "a"]
    assert [record["id"] for record in sort_records(records, SortState(field="city"), FIELDS)] == ["b", "a"]


def test_sort_is_stable_and_desc_reverses_unique_keys() -> None:
    records = _many_records(9)
    ascending = sort_records(records, SortState(field="name"), FIELDS)

    assert sort_records(ascending, SortState(field="name"), FIELDS) == ascending
    assert sort_records(records, SortState(field="name", direction="desc"), FIELDS) == list(reversed(ascending))


def test_sort_keeps_input_order_for_equal_keys() -> None:
    records = [{"id": str(index), "status": "active"} for index in range(5)]

    assert sort_records(records, SortState(field="status"), FIELDS) == records
    assert sort_records(records, SortState(field="status", direction="desc"), FIELDS) == records


def test_pages_cover_the_filtered_set_exactly_once() -> None:
    records = sort_records(_many_records(23), SortState(field="name"), FIELDS)
    pages = total_pages(len(records), 5)

    combined: list[dict[str, Any]] = []
    for page in range(pages):
        combined.extend(paginate(records, page, 5))

    assert pages == 5
    assert combined == records
    assert paginate(records, pages, 5) == []
    assert total_pages(0, 5) == 0


def test_changing_page_size_resets_to_first_page() -> None:
    persisted: list[int] = []
    view = _view(_many_records(60), on_page_size_change=persisted.append)
    view.go_to_page(3)
    assert view.state.page == 3

    view.change_page_size(25)

    assert view.state.page == 0
    assert view.state.page_size == 25
    assert persisted == [25]


def test_go_to_page_ignores_out_of_range() -> None:
    view = _view(_many_records(15))

    view.go_to_page(2)
    view.go_to_page(-1)

    assert view.state.page == 0
    view.go_to_page(1)
    assert view.state.page == 1
    assert len(view.page_rows()) == 5


def test_search_and_filters_reset_page() -> None:
    view = _view(_many_records(30))
    view.go_to_page(2)

    view.on_search("client")
    assert view.state.page == 0

    view.go_to_page(1)
    view.select_filter("status", "active")
    assert view.state.page == 0

    view.go_to_page(1)
    view.clear_filters()
    assert view.state.page == 0


def test_sort_by_toggles_direction() -> None:
    view = _view(_scenario_records())
    assert view.state.sort == SortState(field="name", direction="asc")

    view.sort_by("name")
    assert view.state.sort.direction == "desc"
    assert [record["name"] for record in view.filtered()] == ["Cid", "Bob", "Ann"]

    view.sort_by("status")
    assert view.state.sort == SortState(field="status", direction="asc")


def test_unique_values_use_option_labels_and_unwrap_lists() -> None:
    records = [
        {"id": "1", "status": "active", "custom_fields": {"tags": ["vip", "b2b"], "region": "North"}},
        {"id": "2", "status": "inactive", "custom_fields": {"tags": ["vip"]}},
        {"id": "3", "status": "active", "custom_fields": {"region": ""}},
    ]

    unique = unique_values_by_field(records, FIELDS)

    assert set(unique) == {"status", "region", "tags"}
    assert [(option.value, option.label, option.count) for option in unique["status"]] == [
        ("active", "Active", 2),
        ("inactive", "Inactive", 1),
    ]
    assert [(option.label, option.count) for option in unique["tags"]] == [("Business", 1), ("Important", 2)]
    assert [(option.value, option.count) for option in unique["region"]] == [("North", 1)]


def test_filter_options_ignore_active_filters_and_apply_option_search() -> None:
    view = _view(_scenario_records())
    view.select_filter("status", "active")

    assert [option.value for option in view.filter_options()["status"]] == ["active", "inactive"]

    view.on_filter_search("status", "INact")
    assert [option.value for option in view.filter_options()["status"]] == ["inactive"]


def test_subscribers_receive_view_models() -> None:
    bus = EventBus()
    view = _view(_scenario_records(), bus=bus)
    received: list[InternalEvent] = []
    unsubscribe = view.subscribe(received.append)

    view.select_filter("status", "active")
    unsubscribe()
    view.clear_filters()

    assert len(received) == 1
    payload = received[0].payload
    assert payload["total"] == 2
    assert [row["values"]["name"] for row in payload["rows"]] == ["Bob", "Cid"]
    assert payload["rows"][0]["display"]["status"] == "Active"


def test_columns_default_to_grid_fields_and_persist_selection() -> None:
    storage: dict[str, str] = {}
    view = _view(_scenario_records(), column_store=ColumnVisibilityStore(storage))

    assert [field.id for field in view.columns()] == ["name", "status"]

    view.set_visible_columns(["region", "name", "ghost"])
    assert [field.id for field in view.columns()] == ["name", "region"]
    assert "clients-visible-columns" in storage

    restored = _view(_scenario_records(), column_store=ColumnVisibilityStore(storage))
    assert restored.state.visible_column_ids == ["region", "name"]

    restored.reset_columns()
    assert storage == {}
    assert [field.id for field in restored.columns()] == ["name", "status"]


def test_view_model_shape() -> None:
    view = _view(_many_records(12))

    model = view.view_model()

    assert model["total"] == 12
    assert model["total_pages"] == 2
    assert model["page"] == 0
    assert model["page_size"] == 10
    assert len(model["rows"]) == 10
    assert [column["id"] for column in model["columns"]] == ["name", "status"]
    assert model["sort"] == {"field": "name", "direction": "asc"}
    assert "status" in model["filter_options"]


def test_change_page_size_rejects_non_positive() -> None:
    view = _view(_scenario_records())

    with pytest.raises(ValueError):
        view.change_page_size(0)


def test_event_bus_unsubscribe_during_delivery() -> None:
    bus = EventBus()
    seen: list[str] = []

    def once(event: InternalEvent) -> None:
        seen.append(event.name)
        unsubscribe()

    unsubscribe = bus.subscribe("list.changed.clients", once)
    assert bus.has_subscribers("list.changed.clients")

    bus.publish("list.changed.clients", {})
    bus.publish("list.changed.clients", {})

    assert seen == ["list.changed.clients"]
    assert not bus.has_subscribers("list.changed.clients")
