from __future__ import annotations

import logging

from .kv import Key, KvError, KvStore

logger = logging.getLogger(__name__)

COUNTER_PREFIX = "counter"


class AllocationError(Exception):
    """A fresh id could not be allocated; nothing was written for the record."""


def counter_key(collection: str) -> Key:
    return (COUNTER_PREFIX, collection)


class IdAllocator:
    """Hands out unique, strictly increasing integer ids for one collection.

    Each call commits an atomic ``sum(counter, 1)``; the store reports the
    post-increment value from the same commit, so concurrent callers never
    observe each other's ids. A committed increment is never rolled back, so a
    caller that fails after allocation leaves a gap in the sequence.
    """

    def __init__(self, store: KvStore, collection: str) -> None:
        self._store = store
        self._key = counter_key(collection)

    @property
    def key(self) -> Key:
        return self._key

    async def next(self) -> int:
        try:
            res = await self._store.atomic().sum(self._key, 1).commit()
        except KvError as exc:
            logger.error("id allocation failed for %s: %s", self._key, exc)
            raise AllocationError(str(exc)) from exc

        if not res.ok:
            logger.error("id allocation commit conflicted for %s", self._key)
            raise AllocationError("counter commit conflicted")

        value = res.sums.get(self._key)
        if value is None:
            # Store did not report the sum; read back instead of guessing.
            try:
                entry = await self._store.get(self._key)
            except KvError as exc:
                raise AllocationError(str(exc)) from exc
            value = entry.value
            if value is None:
                logger.error("counter %s missing after a successful increment", self._key)
                raise AllocationError("counter value missing after increment")
        return int(value)
