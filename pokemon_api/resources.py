from __future__ import annotations

import logging
import re
from typing import Any, Union

from .errors import AllocationFailed, InvalidInput, NotFound, StoreUnavailable
from .ids import AllocationError, IdAllocator
from .kv import Key, KvError, KvStore

logger = logging.getLogger(__name__)

RecordId = Union[int, str]

_NUMERIC_ID = re.compile(r"[0-9]+")


def parse_record_id(segment: str) -> RecordId:
    """All-digit path segments address integer ids; anything else is a literal key."""
    if _NUMERIC_ID.fullmatch(segment):
        return int(segment)
    return segment


class ResourceStore:
    """CRUD for one record collection stored under ``(collection, id)`` keys."""

    def __init__(self, store: KvStore, collection: str = "pokemon") -> None:
        self._store = store
        self._collection = collection
        self._ids = IdAllocator(store, collection)

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def allocator(self) -> IdAllocator:
        return self._ids

    def _key(self, record_id: RecordId) -> Key:
        return (self._collection, record_id)

    async def create(self, body: Any) -> dict[str, Any]:
        if not isinstance(body, dict):
            raise InvalidInput()

        try:
            record_id = await self._ids.next()
        except AllocationError as exc:
            raise AllocationFailed() from exc

        record = {**body, "id": record_id}
        try:
            await self._store.set(self._key(record_id), record)
        except KvError as exc:
            raise StoreUnavailable() from exc
        logger.debug("created %s/%s", self._collection, record_id)
        return record

    async def list(self) -> list[dict[str, Any]]:
        try:
            entries = await self._store.list((self._collection,))
        except KvError as exc:
            raise StoreUnavailable() from exc

        records = []
        for entry in entries:
            if isinstance(entry.value, dict):
                records.append(dict(entry.value))
            else:
                records.append({"value": entry.value})
        return records

    async def get(self, record_id: RecordId) -> dict[str, Any]:
        try:
            entry = await self._store.get(self._key(record_id))
        except KvError as exc:
            raise StoreUnavailable() from exc
        if entry.value is None:
            raise NotFound()
        return entry.value

    async def delete(self, record_id: RecordId) -> None:
        try:
            await self._store.delete(self._key(record_id))
        except KvError as exc:
            raise StoreUnavailable() from exc
        logger.debug("deleted %s/%s", self._collection, record_id)
