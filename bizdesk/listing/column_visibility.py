from __future__ import annotations

import json
import logging
from collections.abc import MutableMapping, Sequence


logger = logging.getLogger("bizdesk.listing.columns")


class ColumnVisibilityStore:
    """Persist visible column ids as a JSON list in a key-value mapping.

    An empty or missing entry means "use the schema defaults".
    """

    def __init__(self, storage: MutableMapping[str, str] | None = None) -> None:
        self._storage: MutableMapping[str, str] = storage if storage is not None else {}

    def load(self, key: str, known_ids: Sequence[str] | None = None) -> list[str]:
        raw = self._storage.get(key)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            logger.warning("columns.load_failed", extra={"error": str(exc)})
            return []
        if not isinstance(parsed, list):
            return []

        ids = [str(item) for item in parsed if isinstance(item, str) and item]
        if known_ids is not None:
            known = set(known_ids)
            ids = [column_id for column_id in ids if column_id in known]
        return ids

    def save(self, key: str, column_ids: Sequence[str]) -> None:
        if not column_ids:
            self.clear(key)
            return
        self._storage[key] = json.dumps(list(column_ids))

    def clear(self, key: str) -> None:
        self._storage.pop(key, None)


def storage_key_for_user(storage_key: str, user_id: str | None) -> str:
    return f"{user_id}:{storage_key}" if user_id else storage_key
