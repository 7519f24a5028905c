import asyncio

import pytest

from pokemon_api.errors import AllocationFailed, InvalidInput, NotFound, StoreUnavailable
from pokemon_api.kv import CommitResult, InMemoryKvStore
from pokemon_api.resources import ResourceStore, parse_record_id


class _NoCounterStore(InMemoryKvStore):
    async def commit(self, op):
        if any(m.kind == "sum" for m in op.mutations):
            return CommitResult(ok=False)
        return await super().commit(op)


@pytest.mark.asyncio
async def test_create_then_get(store):
    resources = ResourceStore(store)
    record = await resources.create({"name": "pikachu", "types": ["electric"]})
    assert record == {"name": "pikachu", "types": ["electric"], "id": 1}
    assert await resources.get(record["id"]) == record


@pytest.mark.asyncio
async def test_concurrent_creates_get_unique_ids(store):
    resources = ResourceStore(store)
    records = await asyncio.gather(*[resources.create({"n": i}) for i in range(40)])
    ids = {r["id"] for r in records}
    assert len(ids) == 40
    for r in records:
        assert (await resources.get(r["id"]))["n"] == r["n"]


@pytest.mark.asyncio
async def test_caller_supplied_id_is_overwritten(store):
    resources = ResourceStore(store)
    record = await resources.create({"id": 999, "name": "x"})
    assert record["id"] == 1
    assert (await store.get(("pokemon", 1))).value == {"id": 1, "name": "x"}
    assert (await store.get(("pokemon", 999))).value is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [None, "a string", 12, ["a", "b"], True])
async def test_non_object_body_rejected_without_allocation(store, body):
    resources = ResourceStore(store)
    with pytest.raises(InvalidInput):
        await resources.create(body)
    assert (await store.get(("counter", "pokemon"))).value is None
    assert await resources.list() == []


@pytest.mark.asyncio
async def test_allocation_failure_writes_nothing():
    kv = _NoCounterStore()
    resources = ResourceStore(kv)
    with pytest.raises(AllocationFailed):
        await resources.create({"name": "x"})
    assert await resources.list() == []


@pytest.mark.asyncio
async def test_delete_is_idempotent(store):
    resources = ResourceStore(store)
    record = await resources.create({"name": "x"})
    await resources.delete(record["id"])
    await resources.delete(record["id"])
    with pytest.raises(NotFound):
        await resources.get(record["id"])


@pytest.mark.asyncio
async def test_list_after_delete(store):
    resources = ResourceStore(store)
    for name in ("a", "b", "c"):
        await resources.create({"name": name})
    await resources.delete(2)
    assert await resources.list() == [{"name": "a", "id": 1}, {"name": "c", "id": 3}]


@pytest.mark.asyncio
async def test_list_orders_numerically_not_lexically(store):
    resources = ResourceStore(store)
    for i in range(12):
        await resources.create({"n": i})
    assert [r["id"] for r in await resources.list()] == list(range(1, 13))


@pytest.mark.asyncio
async def test_list_wraps_non_object_values(store):
    await store.set(("pokemon", 1), {"id": 1})
    await store.set(("pokemon", 2), "legacy")
    await store.set(("pokemon", 3), [1, 2])
    resources = ResourceStore(store)
    assert await resources.list() == [{"id": 1}, {"value": "legacy"}, {"value": [1, 2]}]


@pytest.mark.asyncio
async def test_list_returns_copies(store):
    resources = ResourceStore(store)
    await resources.create({"name": "x"})
    first = await resources.list()
    first[0]["name"] = "changed"
    assert (await resources.list())[0]["name"] == "x"


@pytest.mark.asyncio
async def test_string_ids_are_addressable(store):
    await store.set(("pokemon", "missingno"), {"name": "glitch"})
    resources = ResourceStore(store)
    assert await resources.get("missingno") == {"name": "glitch"}
    await resources.delete("missingno")
    with pytest.raises(NotFound):
        await resources.get("missingno")


@pytest.mark.asyncio
async def test_null_stored_value_is_not_found(store):
    await store.set(("pokemon", 5), None)
    with pytest.raises(NotFound):
        await ResourceStore(store).get(5)


@pytest.mark.asyncio
async def test_closed_store_surfaces_as_unavailable():
    kv = InMemoryKvStore()
    resources = ResourceStore(kv)
    await kv.aclose()
    with pytest.raises(StoreUnavailable):
        await resources.list()
    with pytest.raises(StoreUnavailable):
        await resources.get(1)


@pytest.mark.parametrize(
    "segment, expected",
    [("1", 1), ("007", 7), ("abc", "abc"), ("1a", "1a"), ("-1", "-1"), ("", ""), ("١٢", "١٢")],
)
def test_parse_record_id(segment, expected):
    got = parse_record_id(segment)
    assert got == expected
    assert type(got) is type(expected)
