#!/usr/bin/env python3
"""Async fetch - fan out concurrent work inside one node.

AsyncParallelBatchNode runs execute for every URL concurrently and hands
finalize the results in input order.

Usage:
    python examples/async_fetch.py
    synaptic run examples/async_fetch.py --json
"""

import asyncio
import random

from synaptic import END, AsyncGraph, AsyncNode, AsyncParallelBatchNode


class FetchAll(AsyncParallelBatchNode):
    async def prepare(self, shared, params):
        return shared.get("urls", ["https://a.example", "https://b.example", "https://c.example"])

    async def execute(self, url):
        await asyncio.sleep(random.uniform(0, 0.05))
        return {"url": url, "size": len(url) * 100}

    async def finalize(self, shared, params, pages):
        shared["pages"] = pages
        return "fetched"


class Report(AsyncNode):
    async def prepare(self, shared, params):
        return shared["pages"]

    async def execute(self, pages):
        return sum(page["size"] for page in pages)

    async def finalize(self, shared, params, total):
        shared["total_size"] = total
        return "done"


graph = AsyncGraph("fetch")
fetch = graph.register(FetchAll(), "fetch", start=True)
report = graph.register(Report(), "report")
fetch - "fetched" >> report
report - "done" >> END


if __name__ == "__main__":
    shared = asyncio.run(graph.run_async({}))
    print([page["url"] for page in shared["pages"]], shared["total_size"])
