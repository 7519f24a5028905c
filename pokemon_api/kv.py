from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Union

KeyPart = Union[bytes, str, int, float, bool]
Key = tuple[KeyPart, ...]


class KvError(Exception):
    """Base exception for key-value store operations."""


class StoreClosedError(KvError):
    """The store was used after it was closed."""


def part_rank(part: KeyPart) -> int:
    # bool before int: bool is an int subclass
    if isinstance(part, bool):
        return 3
    if isinstance(part, bytes):
        return 0
    if isinstance(part, str):
        return 1
    if isinstance(part, (int, float)):
        return 2
    raise TypeError(f"unsupported key part type: {type(part).__name__}")


def key_sort_key(key: Key) -> tuple:
    """Sort key that orders composite keys the way the store iterates them."""
    return tuple((part_rank(p), p) for p in key)


def validate_key(key: Key) -> Key:
    if not isinstance(key, tuple) or not key:
        raise TypeError("key must be a non-empty tuple")
    for part in key:
        part_rank(part)
    return key


def has_prefix(key: Key, prefix: Key) -> bool:
    if len(key) <= len(prefix):
        return False
    return all(
        part_rank(a) == part_rank(b) and a == b for a, b in zip(key, prefix)
    )


def format_versionstamp(seq: int) -> str:
    return f"{seq:020d}"


@dataclass(frozen=True)
class KvEntry:
    key: Key
    value: Any
    versionstamp: str | None


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    versionstamp: str | None = None
    # post-commit values of keys touched by sum()
    sums: dict[Key, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Mutation:
    kind: str  # set | delete | sum
    key: Key
    value: Any = None


class AtomicOperation:
    """Builder for a conditional, all-or-nothing commit."""

    def __init__(self, store: "KvStore") -> None:
        self._store = store
        self.checks: list[tuple[Key, str | None]] = []
        self.mutations: list[Mutation] = []

    def check(self, key: Key, versionstamp: str | None) -> "AtomicOperation":
        """Require `key` to still be at `versionstamp` (None means absent)."""
        self.checks.append((validate_key(key), versionstamp))
        return self

    def set(self, key: Key, value: Any) -> "AtomicOperation":
        self.mutations.append(Mutation("set", validate_key(key), value))
        return self

    def delete(self, key: Key) -> "AtomicOperation":
        self.mutations.append(Mutation("delete", validate_key(key)))
        return self

    def sum(self, key: Key, n: int) -> "AtomicOperation":
        if isinstance(n, bool) or not isinstance(n, int):
            raise TypeError("sum operand must be an int")
        self.mutations.append(Mutation("sum", validate_key(key), n))
        return self

    async def commit(self) -> CommitResult:
        return await self._store.commit(self)


def apply_sum(current: Any, n: int) -> int:
    if current is None:
        return n
    if isinstance(current, bool) or not isinstance(current, int):
        raise KvError(f"cannot sum into non-integer value {current!r}")
    return current + n


class KvStore(ABC):
    """Ordered key-value store addressed by composite keys."""

    @abstractmethod
    async def get(self, key: Key) -> KvEntry: ...

    @abstractmethod
    async def set(self, key: Key, value: Any) -> CommitResult: ...

    @abstractmethod
    async def delete(self, key: Key) -> None: ...

    @abstractmethod
    async def list(self, prefix: Key) -> list[KvEntry]:
        """Entries strictly under `prefix`, ascending by key."""

    @abstractmethod
    async def commit(self, op: AtomicOperation) -> CommitResult: ...

    async def aclose(self) -> None:
        return None

    def atomic(self) -> AtomicOperation:
        return AtomicOperation(self)


@dataclass(frozen=True)
class StoredValue:
    value: Any
    seq: int


class InMemoryKvStore(KvStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._data: dict[Key, StoredValue] = {}
        self._last_seq: int = 0
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("store is closed")

    def _entry(self, key: Key) -> KvEntry:
        item = self._data.get(key)
        if item is None:
            return KvEntry(key=key, value=None, versionstamp=None)
        return KvEntry(
            key=key,
            value=copy.deepcopy(item.value),
            versionstamp=format_versionstamp(item.seq),
        )

    async def get(self, key: Key) -> KvEntry:
        validate_key(key)
        async with self._lock:
            self._ensure_open()
            return self._entry(key)

    async def set(self, key: Key, value: Any) -> CommitResult:
        return await self.atomic().set(key, value).commit()

    async def delete(self, key: Key) -> None:
        await self.atomic().delete(key).commit()

    async def list(self, prefix: Key) -> list[KvEntry]:
        async with self._lock:
            self._ensure_open()
            keys = sorted(
                (k for k in self._data if has_prefix(k, prefix)), key=key_sort_key
            )
            return [self._entry(k) for k in keys]

    async def commit(self, op: AtomicOperation) -> CommitResult:
        async with self._lock:
            self._ensure_open()
            for key, versionstamp in op.checks:
                current = self._data.get(key)
                current_vs = None if current is None else format_versionstamp(current.seq)
                if current_vs != versionstamp:
                    return CommitResult(ok=False)

            # Stage everything first so a failing sum leaves no partial write.
            staged: dict[Key, StoredValue | None] = {}
            sums: dict[Key, int] = {}
            seq = self._last_seq + 1
            for m in op.mutations:
                if m.kind == "set":
                    staged[m.key] = StoredValue(value=copy.deepcopy(m.value), seq=seq)
                elif m.kind == "delete":
                    staged[m.key] = None
                else:
                    prev = staged[m.key] if m.key in staged else self._data.get(m.key)
                    total = apply_sum(None if prev is None else prev.value, m.value)
                    staged[m.key] = StoredValue(value=total, seq=seq)
                    sums[m.key] = total

            for key, item in staged.items():
                if item is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = item
            self._last_seq = seq
            return CommitResult(ok=True, versionstamp=format_versionstamp(seq), sums=sums)

    async def aclose(self) -> None:
        async with self._lock:
            self._closed = True
