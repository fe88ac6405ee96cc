from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence
import asyncio
import logging

from cdemaker.comparison_models import (
    BatchError,
    BatchFinding,
    ComparisonReport,
    ExtractedRow,
    PageImage,
)
from cdemaker.services.aggregate import aggregate_row_results, summarize_results
from cdemaker.services.retry import RetryPolicy, Sleeper, compare_batch_with_retry
from cdemaker.services.providers import ModelClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Batch:
    index: int
    rows: Sequence[ExtractedRow]
    pages: Sequence[PageImage]

    @property
    def start_page(self) -> int:
        return self.pages[0].page_number

    @property
    def end_page(self) -> int:
        return self.pages[-1].page_number


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def plan_batches(
    rows: Sequence[ExtractedRow],
    pages: Sequence[PageImage],
    rows_per_batch: int,
    pages_per_batch: int,
) -> List[Batch]:
    """Page groups outer, row groups inner; list order is issue order."""
    if rows_per_batch < 1 or pages_per_batch < 1:
        raise ValueError("batch sizes must be positive")
    ordered_pages = sorted(pages, key=lambda p: p.page_number)
    batches: List[Batch] = []
    for page_group in _chunks(ordered_pages, pages_per_batch):
        for row_group in _chunks(list(rows), rows_per_batch):
            batches.append(Batch(index=len(batches), rows=row_group, pages=page_group))
    return batches


async def run_comparison(
    client: ModelClient,
    rows: Sequence[ExtractedRow],
    pages: Sequence[PageImage],
    rows_per_batch: int = 10,
    pages_per_batch: int = 5,
    policy: RetryPolicy = RetryPolicy(),
    cancel: Optional[asyncio.Event] = None,
    sleep: Optional[Sleeper] = None,
) -> ComparisonReport:
    """Run every batch sequentially and merge the findings into one report.

    A failed batch is recorded in the report's errors; the rows it covered
    fall back to not_found unless another batch found them.
    """
    batches = plan_batches(rows, pages, rows_per_batch, pages_per_batch)
    findings: List[BatchFinding] = []
    errors: List[BatchError] = []

    for batch in batches:
        log.info("[compare] batch %d/%d: %d specs, pages %d-%d",
                 batch.index + 1, len(batches), len(batch.rows), batch.start_page, batch.end_page)
        outcome = await compare_batch_with_retry(
            client, batch.rows, batch.pages, batch.start_page, policy=policy, cancel=cancel, sleep=sleep,
        )
        findings.extend(outcome.findings)
        if not outcome.ok:
            errors.append(BatchError(
                batch_index=batch.index,
                row_ids=[r.id for r in batch.rows],
                start_page=batch.start_page,
                end_page=batch.end_page,
                error=outcome.error or "Unknown error",
                kind=outcome.error_kind or "unknown",
                attempts=outcome.attempts,
            ))

    results = aggregate_row_results(rows, findings)
    return ComparisonReport(
        results=results,
        summary=summarize_results(results),
        total_findings=len(findings),
        batches_run=len(batches),
        errors=errors,
    )
