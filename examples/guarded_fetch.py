"""Example: Fetch JSON through a guarded HTTP client."""

import asyncio
import json
import httpx
from query_guard import GuardedClient, QueryBlocked, QueryGuardConfig


async def main():
    config = QueryGuardConfig(client={"base_url": "https://httpbin.org"})

    async with GuardedClient(config=config) as client:
        for status in (200, 503, 503, 503, 503):
            key = ["status", "flaky"]
            try:
                response = await client.get(key, f"/status/{status}")
                print(f"ok {response.status_code}")
            except QueryBlocked as exc:
                print(f"blocked: {exc}")
            except httpx.HTTPStatusError as exc:
                print(f"failed {exc.response.status_code}")

        print(json.dumps([s.model_dump(mode="json") for s in client.guard.snapshot()], indent=2))


if __name__ == "__main__":
    asyncio.run(main())
