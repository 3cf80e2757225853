from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from bizdesk.core.events import EventBus, EventHandler
from bizdesk.fields.schemas import FieldSchema, GridConfiguration, SortOrder
from bizdesk.fields.values import format_field_value, get_field_value, sort_key
from bizdesk.listing.column_visibility import ColumnVisibilityStore


logger = logging.getLogger("bizdesk.listing")

Record = dict[str, Any]
ValueGetter = Callable[[Record, str], Any]

FILTER_ALL = "all"
VIEW_CHANGED_EVENT = "listing.view_changed"


@dataclass(frozen=True)
class EntityAdapter:
    """Per-entity knobs for the generic list engine."""

    module: str
    search_fields: tuple[str, ...]
    storage_key: str
    value_getter: ValueGetter = get_field_value


@dataclass(frozen=True)
class FilterOption:
    value: Any
    label: str
    count: int


@dataclass(frozen=True)
class SortState:
    field: str
    direction: SortOrder = "asc"


@dataclass
class ListViewState:
    search_term: str = ""
    custom_field_filters: dict[str, Any] = field(default_factory=dict)
    sort: SortState = field(default_factory=lambda: SortState(field="name"))
    page: int = 0
    page_size: int = 10
    visible_column_ids: list[str] = field(default_factory=list)
    filter_search_terms: dict[str, str] = field(default_factory=dict)


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    return str(value)


def _filter_is_set(value: Any) -> bool:
    return value is not None and value != "" and value != FILTER_ALL


def apply_custom_filters(
    records: Iterable[Record],
    filters: Mapping[str, Any],
    value_getter: ValueGetter = get_field_value,
) -> list[Record]:
    active = {name: value for name, value in filters.items() if _filter_is_set(value)}
    if not active:
        return list(records)

    result: list[Record] = []
    for record in records:
        keep = True
        for name, expected in active.items():
            current = value_getter(record, name)
            if current is None or stringify(current) != stringify(expected):
                keep = False
                break
        if keep:
            result.append(record)
    return result


def search_field_names(base_fields: Sequence[str], fields: Sequence[FieldSchema]) -> list[str]:
    names = list(base_fields)
    for schema in fields:
        if schema.is_active and schema.grid_config.filterable and schema.name not in names:
            names.append(schema.name)
    return names


def apply_search(
    records: Iterable[Record],
    term: str,
    base_fields: Sequence[str],
    fields: Sequence[FieldSchema],
    value_getter: ValueGetter = get_field_value,
) -> list[Record]:
    needle = (term or "").strip().casefold()
    if not needle:
        return list(records)

    names = search_field_names(base_fields, fields)
    result: list[Record] = []
    for record in records:
        for name in names:
            value = value_getter(record, name)
            if value is not None and needle in stringify(value).casefold():
                result.append(record)
                break
    return result


def _find_field(fields: Sequence[FieldSchema], name: str) -> FieldSchema | None:
    for schema in fields:
        if schema.name == name:
            return schema
    return None


def sort_records(
    records: Iterable[Record],
    sort: SortState | None,
    fields: Sequence[FieldSchema],
    value_getter: ValueGetter = get_field_value,
) -> list[Record]:
    """Stable, type-aware sort on a single field.

    Fields missing from the schema compare as case-insensitive text.
    """
    rows = list(records)
    if sort is None or not sort.field:
        return rows
    schema = _find_field(fields, sort.field)
    return sorted(
        rows,
        key=lambda record: sort_key(value_getter(record, sort.field), schema),
        reverse=sort.direction == "desc",
    )


def total_pages(count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return math.ceil(count / page_size)


def paginate(records: Sequence[Record], page: int, page_size: int) -> list[Record]:
    if page_size <= 0 or page < 0:
        return []
    start = page * page_size
    return list(records[start : start + page_size])


def _option_label(schema: FieldSchema, value: Any) -> str:
    if schema.type in {"select", "multiselect", "dictionary"}:
        label = schema.option_label(value)
        if label is not None:
            return label
    return stringify(value)


def unique_values_by_field(
    records: Iterable[Record],
    fields: Sequence[FieldSchema],
    value_getter: ValueGetter = get_field_value,
) -> dict[str, list[FilterOption]]:
    """Filter dropdown options for every active filterable field.

    Counts are taken over the records passed in, which callers keep unfiltered.
    List values contribute one entry per element; map values are skipped.
    """
    rows = list(records)
    result: dict[str, list[FilterOption]] = {}
    for schema in fields:
        if not (schema.is_active and schema.grid_config.filterable):
            continue

        counts: dict[Any, int] = {}
        for record in rows:
            value = value_getter(record, schema.name)
            if value is None or value == "" or isinstance(value, dict):
                continue
            items = value if isinstance(value, (list, tuple)) else [value]
            for item in items:
                if item is None or isinstance(item, (dict, list)):
                    continue
                counts[item] = counts.get(item, 0) + 1

        options = [
            FilterOption(value=value, label=_option_label(schema, value), count=count)
            for value, count in counts.items()
        ]
        options.sort(key=lambda option: option.label.casefold())
        result[schema.name] = options
    return result


def default_grid_fields(fields: Sequence[FieldSchema]) -> list[FieldSchema]:
    visible = [schema for schema in fields if schema.is_active and schema.grid_config.show_in_grid]
    return sorted(visible, key=lambda schema: (schema.grid_config.grid_order, schema.id))


def resolve_columns(fields: Sequence[FieldSchema], visible_column_ids: Sequence[str]) -> list[FieldSchema]:
    if not visible_column_ids:
        return default_grid_fields(fields)
    wanted = set(visible_column_ids)
    selected = [schema for schema in fields if schema.is_active and schema.id in wanted]
    return sorted(selected, key=lambda schema: (schema.grid_config.grid_order, schema.id))


class ListView:
    """Filter, search, sort and paginate one entity collection.

    The view is a pure derivation of ``records`` and ``state``. Every intent
    updates the state and publishes the new view model to subscribers.
    """

    def __init__(
        self,
        adapter: EntityAdapter,
        fields: Sequence[FieldSchema],
        grid_config: GridConfiguration,
        records: Iterable[Record] = (),
        column_store: ColumnVisibilityStore | None = None,
        bus: EventBus | None = None,
        on_page_size_change: Callable[[int], None] | None = None,
    ) -> None:
        self.adapter = adapter
        self.fields = list(fields)
        self.grid_config = grid_config
        self._records: list[Record] = list(records)
        self._column_store = column_store
        self._bus = bus or EventBus()
        self._on_page_size_change = on_page_size_change

        visible: list[str] = []
        if column_store is not None:
            visible = column_store.load(adapter.storage_key, [schema.id for schema in self.fields])
        self.state = ListViewState(
            sort=SortState(field=grid_config.sort_by, direction=grid_config.sort_order),
            page_size=grid_config.items_per_page,
            visible_column_ids=visible,
        )

    @property
    def records(self) -> list[Record]:
        return list(self._records)

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        return self._bus.subscribe(self._event_name, handler)

    @property
    def _event_name(self) -> str:
        return f"{VIEW_CHANGED_EVENT}.{self.adapter.module}"

    def _changed(self) -> None:
        if self._bus.has_subscribers(self._event_name):
            self._bus.publish(self._event_name, self.view_model())

    # intents

    def set_records(self, records: Iterable[Record]) -> None:
        self._records = list(records)
        pages = self.total_pages
        if self.state.page >= pages:
            self.state.page = max(pages - 1, 0)
        self._changed()

    def on_search(self, term: str) -> None:
        self.state.search_term = term or ""
        self.state.page = 0
        self._changed()

    def select_filter(self, field_name: str, value: Any | None) -> None:
        if _filter_is_set(value):
            self.state.custom_field_filters[field_name] = value
        else:
            self.state.custom_field_filters.pop(field_name, None)
        self.state.page = 0
        self._changed()

    def clear_filters(self) -> None:
        self.state.custom_field_filters = {}
        self.state.page = 0
        self._changed()

    def sort_by(self, field_name: str) -> None:
        current = self.state.sort
        if current.field == field_name:
            direction: SortOrder = "desc" if current.direction == "asc" else "asc"
        else:
            direction = "asc"
        self.state.sort = SortState(field=field_name, direction=direction)
        self.state.page = 0
        self._changed()

    def set_sort(self, field_name: str, direction: SortOrder) -> None:
        self.state.sort = SortState(field=field_name, direction=direction)
        self.state.page = 0
        self._changed()

    def go_to_page(self, page: int) -> None:
        if page < 0 or page >= self.total_pages:
            return
        self.state.page = page
        self._changed()

    def change_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.state.page_size = page_size
        self.state.page = 0
        if self._on_page_size_change is not None:
            self._on_page_size_change(page_size)
        self._changed()

    def set_visible_columns(self, column_ids: Sequence[str]) -> None:
        known = {schema.id for schema in self.fields}
        self.state.visible_column_ids = [column_id for column_id in column_ids if column_id in known]
        if self._column_store is not None:
            self._column_store.save(self.adapter.storage_key, self.state.visible_column_ids)
        self._changed()

    def reset_columns(self) -> None:
        self.state.visible_column_ids = []
        if self._column_store is not None:
            self._column_store.clear(self.adapter.storage_key)
        self._changed()

    def on_filter_search(self, field_name: str, term: str) -> None:
        if term:
            self.state.filter_search_terms[field_name] = term
        else:
            self.state.filter_search_terms.pop(field_name, None)
        self._changed()

    # derived

    def filtered(self) -> list[Record]:
        getter = self.adapter.value_getter
        rows = apply_custom_filters(self._records, self.state.custom_field_filters, getter)
        rows = apply_search(rows, self.state.search_term, self.adapter.search_fields, self.fields, getter)
        return sort_records(rows, self.state.sort, self.fields, getter)

    def page_rows(self) -> list[Record]:
        return paginate(self.filtered(), self.state.page, self.state.page_size)

    @property
    def total_pages(self) -> int:
        return total_pages(len(self.filtered()), self.state.page_size)

    @property
    def active_filter_count(self) -> int:
        return sum(1 for value in self.state.custom_field_filters.values() if _filter_is_set(value))

    def columns(self) -> list[FieldSchema]:
        return resolve_columns(self.fields, self.state.visible_column_ids)

    def column_options(self) -> list[dict[str, Any]]:
        visible = {schema.id for schema in self.columns()}
        active = sorted(
            (schema for schema in self.fields if schema.is_active),
            key=lambda schema: (schema.grid_config.grid_order, schema.id),
        )
        return [{"id": schema.id, "label": schema.label, "visible": schema.id in visible} for schema in active]

    def filter_options(self) -> dict[str, list[FilterOption]]:
        unique = unique_values_by_field(self._records, self.fields, self.adapter.value_getter)
        result: dict[str, list[FilterOption]] = {}
        for name, options in unique.items():
            term = self.state.filter_search_terms.get(name, "").casefold()
            result[name] = [option for option in options if term in option.label.casefold()] if term else options
        return result

    def render_row(self, record: Record, columns: Sequence[FieldSchema]) -> dict[str, Any]:
        getter = self.adapter.value_getter
        return {
            "id": record.get("id"),
            "values": {schema.name: getter(record, schema.name) for schema in columns},
            "display": {schema.name: format_field_value(getter(record, schema.name), schema) for schema in columns},
        }

    def view_model(self) -> dict[str, Any]:
        columns = self.columns()
        filtered = self.filtered()
        rows = paginate(filtered, self.state.page, self.state.page_size)
        return {
            "columns": [{"id": schema.id, "name": schema.name, "label": schema.label, "type": schema.type} for schema in columns],
            "rows": [self.render_row(record, columns) for record in rows],
            "total": len(filtered),
            "total_pages": total_pages(len(filtered), self.state.page_size),
            "page": self.state.page,
            "page_size": self.state.page_size,
            "filter_options": {
                name: [{"value": option.value, "label": option.label, "count": option.count} for option in options]
                for name, options in self.filter_options().items()
            },
            "active_filters": dict(self.state.custom_field_filters),
            "sort": {"field": self.state.sort.field, "direction": self.state.sort.direction},
            "search_term": self.state.search_term,
        }
