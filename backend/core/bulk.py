"""
bulk.py — Bounded fan-out for bulk actions against the remote API.

Each item is one independent request. At most `concurrency` run at once,
all are awaited, and a failure never cancels or rolls back the others.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from core.api_client import ApiResult

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = int(os.getenv("BULK_CONCURRENCY", "5"))


@dataclass
class BulkFailure:
    item: Any
    error: str


@dataclass
class BulkResult:
    successful: int = 0
    failed: List[BulkFailure] = field(default_factory=list)
    results: List[Optional[ApiResult]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.successful + len(self.failed)

    def summary(self) -> str:
        return f"{self.successful} berhasil, {len(self.failed)} gagal"

    def as_dict(self) -> dict:
        return {
            "successful": self.successful,
            "failed": len(self.failed),
            "failures": [{"item": str(f.item), "error": f.error} for f in self.failed],
            "message": self.summary(),
        }


async def run_bulk(
    items: Sequence[Any],
    worker: Callable[[Any], Awaitable[ApiResult]],
    concurrency: Optional[int] = None,
    describe: Callable[[Any], Any] = lambda item: item,
) -> BulkResult:
    """Run `worker` over every item; results keep the input order."""
    limit = max(1, concurrency or DEFAULT_CONCURRENCY)
    semaphore = asyncio.Semaphore(limit)

    async def _one(item):
        async with semaphore:
            try:
                return await worker(item)
            except Exception as exc:
                logger.exception("Bulk worker failed for %s", describe(item))
                return exc

    outcomes = await asyncio.gather(*(_one(item) for item in items))

    result = BulkResult()
    for item, outcome in zip(items, outcomes):
        if isinstance(outcome, Exception):
            result.failed.append(BulkFailure(describe(item), str(outcome) or outcome.__class__.__name__))
            result.results.append(None)
        elif outcome.ok:
            result.successful += 1
            result.results.append(outcome)
        else:
            result.failed.append(BulkFailure(describe(item), outcome.error or "Permintaan gagal"))
            result.results.append(outcome)

    logger.info("Bulk run finished: %s", result.summary())
    return result
