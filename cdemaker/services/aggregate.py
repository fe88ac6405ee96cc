from __future__ import annotations
from typing import Callable, Dict, List, Sequence

from cdemaker.comparison_models import (
    BatchFinding,
    ComparisonSummary,
    ExtractedRow,
    SpecRowResult,
    SubmittalFinding,
    SubmittalLocation,
)
from cdemaker.services.ids import generate_finding_id

CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}
STATUS_ORDER = {"comply": 0, "deviate": 1, "exception": 2, "not_found": 3, "pending": 4}


def _to_submittal_finding(f: BatchFinding, new_id: Callable[[], str]) -> SubmittalFinding:
    return SubmittalFinding(
        id=new_id(),
        page_number=f.page_number,
        value=f.value,
        unit=f.unit,
        confidence=f.confidence,
        bounding_box=f.bounding_box,
        status=f.status,
        explanation=f.explanation,
    )


def _rollup(row_id: str, findings: List[SubmittalFinding]) -> SpecRowResult:
    if not findings:
        return SpecRowResult(row_id=row_id, findings=[])

    # sorted() is stable, so ties keep batch issue order
    best = sorted(findings, key=lambda f: (CONFIDENCE_ORDER[f.confidence], STATUS_ORDER[f.status]))[0]
    statuses = {f.status for f in findings}
    if "comply" in statuses:
        status = "comply"
    elif "deviate" in statuses:
        status = "deviate"
    else:
        status = "exception"
    confidence = min((f.confidence for f in findings), key=CONFIDENCE_ORDER.__getitem__)

    if len(findings) > 1:
        explanation = f"{len(findings)} occurrences found. Best: {best.explanation}"
    else:
        explanation = best.explanation or "Found in submittal"

    return SpecRowResult(
        row_id=row_id,
        findings=findings,
        status=status,
        match_confidence=confidence,
        explanation=explanation,
        submittal_value=best.value,
        submittal_unit=best.unit,
        submittal_location=SubmittalLocation(page_number=best.page_number, bounding_box=best.bounding_box),
    )


def aggregate_row_results(
    spec_rows: Sequence[ExtractedRow],
    findings: Sequence[BatchFinding],
    new_id: Callable[[], str] = generate_finding_id,
) -> List[SpecRowResult]:
    """Roll findings up into one result per spec row, in row order.

    findings must already be in batch issue order. Findings whose specId
    matches no row are ignored.
    """
    by_row: Dict[str, List[SubmittalFinding]] = {r.id: [] for r in spec_rows}
    for f in findings:
        bucket = by_row.get(f.spec_id)
        if bucket is not None:
            bucket.append(_to_submittal_finding(f, new_id))
    return [_rollup(r.id, by_row[r.id]) for r in spec_rows]


def summarize_results(results: Sequence[SpecRowResult]) -> ComparisonSummary:
    counts = {"comply": 0, "deviate": 0, "exception": 0, "pending": 0, "not_found": 0}
    for r in results:
        counts[r.status] += 1
    return ComparisonSummary(total_items=len(results), **counts)
