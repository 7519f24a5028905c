from __future__ import annotations

from pydantic import BaseModel

from .kv import InMemoryKvStore, KvStore


class Settings(BaseModel):
    # Network
    host: str = "0.0.0.0"
    port: int = 8000

    # Storage
    backend: str = "memory"  # memory | sqlite
    sqlite_path: str = "data/kv.sqlite3"
    collection: str = "pokemon"

    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "Settings":
        import os

        host = os.environ.get("HOST", "0.0.0.0").strip()
        port = int(os.environ.get("PORT", "8000"))

        backend = os.environ.get("KV_BACKEND", "memory").strip().lower()
        sqlite_path = os.environ.get("KV_PATH", "data/kv.sqlite3").strip()

        log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper()

        return Settings(
            host=host,
            port=port,
            backend=backend,
            sqlite_path=sqlite_path,
            log_level=log_level,
        )


def build_store(settings: Settings) -> KvStore:
    if settings.backend == "memory":
        return InMemoryKvStore()
    if settings.backend == "sqlite":
        from .sqlite_store import SqliteKvStore

        return SqliteKvStore(settings.sqlite_path)
    raise ValueError(f"unknown KV_BACKEND: {settings.backend!r}")
