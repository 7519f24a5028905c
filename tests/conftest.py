import httpx
import pytest
import pytest_asyncio

from pokemon_api.config import Settings
from pokemon_api.kv import InMemoryKvStore
from pokemon_api.main import create_app
from pokemon_api.sqlite_store import SqliteKvStore


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        kv = InMemoryKvStore()
    else:
        kv = SqliteKvStore(tmp_path / "kv.sqlite3")
    yield kv
    await kv.aclose()


@pytest_asyncio.fixture
async def client(store):
    app = create_app(Settings(), store=store)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
