"""pokemon_api.sqlite_store

Durable single-host key-value store on stdlib `sqlite3`.

Keys are persisted as compact JSON arrays of `[rank, value]` pairs so a prefix
scan is a string-prefix match on the encoded key; ordering is then restored in
Python with the same sort key the in-memory store uses. Every blocking call runs
in a worker thread through `asyncio.to_thread` behind a single threading lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from .kv import (
    AtomicOperation,
    CommitResult,
    Key,
    KvEntry,
    KvError,
    KvStore,
    StoreClosedError,
    apply_sum,
    format_versionstamp,
    key_sort_key,
    part_rank,
    validate_key,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key_json   TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    seq        INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS kv_meta (
    name  TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
INSERT OR IGNORE INTO kv_meta (name, value) VALUES ('last_seq', 0);
"""


def encode_key(key: Key) -> str:
    parts = []
    for part in validate_key(key):
        rank = part_rank(part)
        parts.append([rank, part.hex() if rank == 0 else part])
    return json.dumps(parts, separators=(",", ":"))


def decode_key(raw: str) -> Key:
    return tuple(bytes.fromhex(v) if rank == 0 else v for rank, v in json.loads(raw))


def encode_prefix(prefix: Key) -> str:
    # '[[1,"pokemon"]]' -> '[[1,"pokemon"],' matches only strictly longer keys
    return encode_key(prefix)[:-1] + ","


class SqliteKvStore(KvStore):
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            str(self._path), timeout=30.0, isolation_level=None, check_same_thread=False
        )
        try:
            self._conn.execute("PRAGMA journal_mode=WAL;")
        except sqlite3.DatabaseError:
            logger.warning("WAL journal mode unavailable for %s", self._path)
        self._conn.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._path

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        def call() -> T:
            with self._lock:
                if self._conn is None:
                    raise StoreClosedError("store is closed")
                try:
                    return fn(self._conn)
                except sqlite3.Error as exc:
                    raise KvError(f"sqlite error: {exc}") from exc

        return await asyncio.to_thread(call)

    @staticmethod
    def _row_entry(key: Key, row: tuple[str, int] | None) -> KvEntry:
        if row is None:
            return KvEntry(key=key, value=None, versionstamp=None)
        return KvEntry(key=key, value=json.loads(row[0]), versionstamp=format_versionstamp(row[1]))

    async def get(self, key: Key) -> KvEntry:
        encoded = encode_key(key)

        def op(conn: sqlite3.Connection) -> KvEntry:
            row = conn.execute(
                "SELECT value_json, seq FROM kv WHERE key_json = ?", (encoded,)
            ).fetchone()
            return self._row_entry(key, row)

        return await self._run(op)

    async def set(self, key: Key, value: Any) -> CommitResult:
        return await self.atomic().set(key, value).commit()

    async def delete(self, key: Key) -> None:
        await self.atomic().delete(key).commit()

    async def list(self, prefix: Key) -> list[KvEntry]:
        encoded = encode_prefix(prefix)

        def op(conn: sqlite3.Connection) -> list[KvEntry]:
            rows = conn.execute(
                "SELECT key_json, value_json, seq FROM kv WHERE substr(key_json, 1, ?) = ?",
                (len(encoded), encoded),
            ).fetchall()
            entries = [self._row_entry(decode_key(k), (v, s)) for k, v, s in rows]
            entries.sort(key=lambda e: key_sort_key(e.key))
            return entries

        return await self._run(op)

    async def commit(self, atomic_op: AtomicOperation) -> CommitResult:
        checks = [(encode_key(k), vs) for k, vs in atomic_op.checks]
        mutations = [(m.kind, encode_key(m.key), m.key, m.value) for m in atomic_op.mutations]

        def op(conn: sqlite3.Connection) -> CommitResult:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for encoded, versionstamp in checks:
                    row = conn.execute(
                        "SELECT seq FROM kv WHERE key_json = ?", (encoded,)
                    ).fetchone()
                    current = None if row is None else format_versionstamp(row[0])
                    if current != versionstamp:
                        conn.execute("ROLLBACK")
                        return CommitResult(ok=False)

                seq = conn.execute(
                    "SELECT value FROM kv_meta WHERE name = 'last_seq'"
                ).fetchone()[0] + 1
                sums: dict[Key, int] = {}
                for kind, encoded, key, value in mutations:
                    if kind == "delete":
                        conn.execute("DELETE FROM kv WHERE key_json = ?", (encoded,))
                        continue
                    if kind == "sum":
                        row = conn.execute(
                            "SELECT value_json FROM kv WHERE key_json = ?", (encoded,)
                        ).fetchone()
                        value = apply_sum(None if row is None else json.loads(row[0]), value)
                        sums[key] = value
                    conn.execute(
                        "INSERT OR REPLACE INTO kv (key_json, value_json, seq) VALUES (?, ?, ?)",
                        (encoded, json.dumps(value), seq),
                    )
                conn.execute("UPDATE kv_meta SET value = ? WHERE name = 'last_seq'", (seq,))
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            return CommitResult(ok=True, versionstamp=format_versionstamp(seq), sums=sums)

        return await self._run(op)

    async def aclose(self) -> None:
        def close() -> None:
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.to_thread(close)
