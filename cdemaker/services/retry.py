from __future__ import annotations
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence
import asyncio
import logging

from cdemaker.comparison_models import ExtractedRow, PageImage
from cdemaker.services.errors import ComparisonCancelled
from cdemaker.services.executor import BatchOutcome, execute_batch
from cdemaker.services.providers import ModelClient

log = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_RETRY_DELAY_MS = 1000

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = MAX_RETRIES
    initial_delay_ms: int = INITIAL_RETRY_DELAY_MS

    def delay_ms(self, attempt: int) -> int:
        return self.initial_delay_ms * (2 ** attempt)


async def backoff_sleep(seconds: float, cancel: Optional[asyncio.Event] = None) -> None:
    """Sleep, waking early with ComparisonCancelled if cancel gets set."""
    if cancel is None:
        await asyncio.sleep(seconds)
        return
    if cancel.is_set():
        raise ComparisonCancelled("comparison cancelled")
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise ComparisonCancelled("comparison cancelled during backoff")


async def compare_batch_with_retry(
    client: ModelClient,
    spec_rows: Sequence[ExtractedRow],
    pages: Sequence[PageImage],
    batch_start_page: int,
    policy: RetryPolicy = RetryPolicy(),
    cancel: Optional[asyncio.Event] = None,
    sleep: Optional[Sleeper] = None,
) -> BatchOutcome:
    """Run one batch, retrying only rate-limited attempts with exponential backoff.

    Attempt n that is rate limited sleeps initial_delay_ms * 2**n and tries
    again while n < max_retries. Any other failure is returned at once.
    """
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise ComparisonCancelled("comparison cancelled")
        outcome = await execute_batch(client, spec_rows, pages, batch_start_page, retry_count=attempt)
        if outcome.ok:
            return outcome
        if outcome.error_kind != "rate_limited" or attempt >= policy.max_retries:
            if outcome.error_kind == "rate_limited":
                log.error("[compare-batch] still rate limited after %d retries: %s", attempt, outcome.error)
            else:
                log.error("[compare-batch] batch failed without retry: %s", outcome.error)
            return outcome
        delay = policy.delay_ms(attempt)
        log.info("[compare-batch] Rate limited, retrying in %dms", delay)
        if sleep is not None:
            await sleep(delay / 1000.0)
        else:
            await backoff_sleep(delay / 1000.0, cancel)
        attempt += 1
