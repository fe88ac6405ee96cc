from __future__ import annotations
from typing import List, Optional, Sequence, Tuple
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select

from cdemaker.comparison_models import ComparisonInput, ComparisonResult, ReportSummary
from cdemaker.models import Comparison, Report


def summarize_comparisons(comparisons: Sequence[Comparison]) -> ReportSummary:
    counts = {"comply": 0, "deviate": 0, "exception": 0, "pending": 0, "not_found": 0}
    for c in comparisons:
        if c.status in counts:
            counts[c.status] += 1
    reviewed = sum(1 for c in comparisons if c.is_reviewed)
    return ReportSummary(total_items=len(comparisons), reviewed=reviewed, **counts)


def to_result(c: Comparison) -> ComparisonResult:
    return ComparisonResult(
        id=c.id,
        row_id=c.row_id,
        spec_field=c.spec_field,
        spec_value=c.spec_value,
        spec_unit=c.spec_unit,
        spec_section=c.spec_section,
        submittal_value=c.submittal_value,
        submittal_unit=c.submittal_unit,
        submittal_location=c.submittal_location,
        findings=c.findings or [],
        status=c.status,
        match_confidence=c.match_confidence,
        ai_explanation=c.ai_explanation,
        user_comment=c.user_comment,
        is_reviewed=c.is_reviewed,
        reviewed_at=c.reviewed_at,
        reviewed_by=c.reviewed_by,
    )


def _comparison(report_id: str, position: int, item: ComparisonInput) -> Comparison:
    return Comparison(
        report_id=report_id,
        position=position,
        row_id=item.row_id,
        spec_field=item.spec_field,
        spec_value=item.spec_value,
        spec_unit=item.spec_unit,
        spec_section=item.spec_section,
        submittal_value=item.submittal_value,
        submittal_unit=item.submittal_unit,
        submittal_location=item.submittal_location.to_wire() if item.submittal_location else None,
        findings=[f.to_wire() for f in item.findings],
        status=item.status,
        match_confidence=item.match_confidence,
        ai_explanation=item.ai_explanation,
        user_comment=item.user_comment,
        is_reviewed=item.is_reviewed,
        reviewed_at=datetime.now(timezone.utc) if item.is_reviewed else None,
        reviewed_by=item.reviewed_by,
    )


async def create_report(
    session: AsyncSession,
    name: str,
    comparisons: Sequence[ComparisonInput],
    project_id: Optional[str] = None,
    spec_document_id: Optional[str] = None,
    submittal_document_id: Optional[str] = None,
) -> Tuple[Report, List[Comparison]]:
    """Persist a report and its comparisons in one transaction, input order kept."""
    report = Report(
        name=name,
        project_id=project_id,
        spec_document_id=spec_document_id,
        submittal_document_id=submittal_document_id,
    )
    session.add(report)
    await session.flush()
    rows = [_comparison(report.id, i, item) for i, item in enumerate(comparisons)]
    session.add_all(rows)
    report.summary = summarize_comparisons(rows).to_wire()
    await session.commit()
    await session.refresh(report)
    return report, await list_comparisons(session, report.id)


async def list_reports(session: AsyncSession, project_id: Optional[str] = None) -> List[Report]:
    stmt = select(Report).order_by(Report.created_at.desc())
    if project_id:
        stmt = stmt.where(Report.project_id == project_id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def get_report(session: AsyncSession, report_id: str) -> Optional[Report]:
    res = await session.execute(select(Report).where(Report.id == report_id))
    return res.scalars().first()


async def list_comparisons(session: AsyncSession, report_id: str) -> List[Comparison]:
    res = await session.execute(
        select(Comparison).where(Comparison.report_id == report_id).order_by(Comparison.position)
    )
    return list(res.scalars().all())


async def refresh_summary(session: AsyncSession, report: Report) -> Report:
    """Recount report.summary from its stored comparisons."""
    comparisons = await list_comparisons(session, report.id)
    report.summary = summarize_comparisons(comparisons).to_wire()
    report.updated_at = datetime.now(timezone.utc)
    session.add(report)
    await session.commit()
    await session.refresh(report)
    return report


async def update_comparison(
    session: AsyncSession,
    comparison_id: str,
    *,
    report_id: Optional[str] = None,
    status: Optional[str] = None,
    user_comment: Optional[str] = None,
    is_reviewed: Optional[bool] = None,
    reviewed_by: Optional[str] = None,
) -> Optional[Comparison]:
    """Apply a manual review to one comparison and recount its report.

    Fields left as None keep their stored value. Returns None when the
    comparison does not exist, belongs to another report, or nothing was given.
    """
    if status is None and user_comment is None and is_reviewed is None and reviewed_by is None:
        return None
    res = await session.execute(select(Comparison).where(Comparison.id == comparison_id))
    comparison = res.scalars().first()
    if comparison is None or (report_id and comparison.report_id != report_id):
        return None

    if status is not None:
        comparison.status = status
    if user_comment is not None:
        comparison.user_comment = user_comment
    if reviewed_by is not None:
        comparison.reviewed_by = reviewed_by
    if is_reviewed is not None:
        comparison.is_reviewed = is_reviewed
        comparison.reviewed_at = datetime.now(timezone.utc) if is_reviewed else None
    session.add(comparison)
    await session.flush()

    report = await get_report(session, comparison.report_id)
    if report is not None:
        await refresh_summary(session, report)
    else:
        await session.commit()
    await session.refresh(comparison)
    return comparison


async def delete_report(session: AsyncSession, report_id: str) -> bool:
    report = await get_report(session, report_id)
    if report is None:
        return False
    await session.execute(delete(Comparison).where(Comparison.report_id == report_id))
    await session.delete(report)
    await session.commit()
    return True
