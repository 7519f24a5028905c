import asyncio
import json
import os
import time
from dataclasses import dataclass

import httpx
import matplotlib.pyplot as plt


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
ARTIFACTS_DIR = os.path.join(ROOT, "artifacts")

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000")


@dataclass
class RunResult:
    requests: int
    concurrency: int
    created: int
    distinct_ids: int
    min_id: int
    max_id: int
    avg_latency_ms: float


async def wait_ready(url: str, timeout_s: float = 30.0) -> None:
    deadline = time.time() + timeout_s
    async with httpx.AsyncClient(timeout=2.0) as client:
        while time.time() < deadline:
            try:
                r = await client.get(url)
                if r.status_code == 200:
                    return
            except httpx.HTTPError:
                pass
            await asyncio.sleep(0.25)
    raise RuntimeError(f"Service not ready: {url}")


async def workload(requests: int, concurrency: int) -> tuple[RunResult, list[float]]:
    await wait_ready(f"{BASE_URL}/pokemon")

    sem = asyncio.Semaphore(concurrency)
    latencies: list[float] = []
    ids: list[int] = []

    async with httpx.AsyncClient(timeout=10.0) as client:
        async def one_create(i: int) -> None:
            async with sem:
                t0 = time.perf_counter()
                r = await client.post(f"{BASE_URL}/pokemon", json={"name": f"load-{i}"})
                t1 = time.perf_counter()

            if r.status_code != 201:
                raise RuntimeError(f"POST failed: {r.status_code} {r.text}")

            ids.append(r.json()["id"])
            latencies.append((t1 - t0) * 1000.0)

        await asyncio.gather(*[one_create(i) for i in range(requests)])

    if len(set(ids)) != len(ids):
        raise RuntimeError(f"duplicate ids allocated: {len(ids) - len(set(ids))} collisions")

    result = RunResult(
        requests=requests,
        concurrency=concurrency,
        created=len(ids),
        distinct_ids=len(set(ids)),
        min_id=min(ids),
        max_id=max(ids),
        avg_latency_ms=sum(latencies) / len(latencies),
    )
    return result, latencies


async def main() -> None:
    os.makedirs(ARTIFACTS_DIR, exist_ok=True)

    requests = int(os.environ.get("REQUESTS", "200"))
    concurrency = int(os.environ.get("CONCURRENCY", "20"))

    result, latencies = await workload(requests, concurrency)

    out_json = os.path.join(ARTIFACTS_DIR, "load_check.json")
    with open(out_json, "w", encoding="utf-8") as f:
        json.dump(result.__dict__, f, indent=2)

    plt.figure(figsize=(7, 4))
    plt.hist(latencies, bins=30)
    plt.xlabel("Create latency (ms)")
    plt.ylabel("Requests")
    plt.title(f"POST /pokemon latency ({requests} requests, concurrency {concurrency})")
    plt.grid(True, alpha=0.3)

    out_png = os.path.join(ARTIFACTS_DIR, "create_latency.png")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)

    print(
        f"created={result.created} distinct={result.distinct_ids} "
        f"ids={result.min_id}..{result.max_id} avg={result.avg_latency_ms:.1f}ms"
    )
    print(f"\nWrote {out_png}")
    print(f"Wrote {out_json}")


if __name__ == "__main__":
    asyncio.run(main())
