from bizdesk.listing.column_visibility import ColumnVisibilityStore, storage_key_for_user
from bizdesk.listing.service import (
    EntityAdapter,
    FilterOption,
    ListView,
    ListViewState,
    SortState,
    apply_custom_filters,
    apply_search,
    paginate,
    resolve_columns,
    sort_records,
    total_pages,
    unique_values_by_field,
)

__all__ = [
    "ColumnVisibilityStore",
    "EntityAdapter",
    "FilterOption",
    "ListView",
    "ListViewState",
    "SortState",
    "apply_custom_filters",
    "apply_search",
    "paginate",
    "resolve_columns",
    "sort_records",
    "storage_key_for_user",
    "total_pages",
    "unique_values_by_field",
]
