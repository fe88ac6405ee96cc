from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, get_args
import logging
from fastapi import APIRouter, Depends, Query, Request
from pydantic import TypeAdapter, ValidationError
from starlette.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cdemaker.comparison_models import ComparisonInput, ReviewStatus
from cdemaker.db import get_session
from cdemaker.models import Comparison, Report
from cdemaker.services import projects as project_repo
from cdemaker.services import reports as repo

log = logging.getLogger(__name__)
router = APIRouter()

_comparisons_adapter = TypeAdapter(List[ComparisonInput])
REVIEW_STATUSES = get_args(ReviewStatus)


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _report_json(r: Report) -> Dict[str, Any]:
    return r.model_dump(mode="json")


def _comparisons_json(comparisons: Sequence[Comparison]) -> List[Dict[str, Any]]:
    return [repo.to_result(c).to_wire() for c in comparisons]


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _valid_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v)


def _optional_str(v: Any) -> bool:
    return v is None or isinstance(v, str)


@router.get("/api/reports")
async def get_reports(
    id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None, alias="projectId"),
    session: AsyncSession = Depends(get_session),
):
    try:
        if id:
            report = await repo.get_report(session, id)
            if report is None:
                return _error("Report not found", 404)
            comparisons = await repo.list_comparisons(session, report.id)
            return JSONResponse({"report": _report_json(report), "comparisons": _comparisons_json(comparisons)})
        reports = await repo.list_reports(session, project_id)
        return JSONResponse([_report_json(r) for r in reports])
    except Exception:
        log.exception("Error fetching reports")
        return _error("Failed to fetch reports", 500)


@router.post("/api/reports")
async def post_report(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        body = await _json_body(request)
        name = body.get("name")
        project_id = body.get("projectId")
        spec_doc, submittal_doc = body.get("specDocumentId"), body.get("submittalDocumentId")
        raw = body.get("comparisons")
        if not _valid_str(name):
            return _error("Report name is required", 400)
        if not _optional_str(project_id):
            return _error("Project ID must be a string", 400)
        if not _optional_str(spec_doc) or not _optional_str(submittal_doc):
            return _error("Document IDs must be strings", 400)
        if not isinstance(raw, list) or not raw:
            return _error("Comparisons array is required", 400)
        try:
            comparisons = _comparisons_adapter.validate_python(raw)
        except ValidationError as e:
            return _error("Invalid comparisons", 400, details=e.errors(include_url=False, include_context=False))
        if project_id and await project_repo.get_project(session, project_id) is None:
            return _error("Project not found", 404)

        report, stored = await repo.create_report(
            session, name, comparisons,
            project_id=project_id or None,
            spec_document_id=spec_doc,
            submittal_document_id=submittal_doc,
        )
        log.info("[reports] saved %r with %d comparisons", report.name, len(stored))
        return JSONResponse({"report": _report_json(report), "comparisons": _comparisons_json(stored)}, status_code=201)
    except Exception:
        log.exception("Error creating report")
        return _error("Failed to create report", 500)


@router.patch("/api/reports")
async def patch_comparison(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        body = await _json_body(request)
        comparison_id = body.get("comparisonId")
        report_id = body.get("reportId")
        status = body.get("status")
        user_comment = body.get("userComment")
        is_reviewed = body.get("isReviewed")
        reviewed_by = body.get("reviewedBy")
        if not _valid_str(comparison_id):
            return _error("Comparison ID is required", 400)
        if status is not None and status not in REVIEW_STATUSES:
            return _error("Invalid status value", 400)
        if not _optional_str(report_id) or not _optional_str(user_comment) or not _optional_str(reviewed_by):
            return _error("Invalid review fields", 400)
        if is_reviewed is not None and not isinstance(is_reviewed, bool):
            return _error("Invalid review fields", 400)

        updated = await repo.update_comparison(
            session, comparison_id,
            report_id=report_id or None,
            status=status,
            user_comment=user_comment,
            is_reviewed=is_reviewed,
            reviewed_by=reviewed_by,
        )
        if updated is None:
            return _error("Comparison not found or no changes made", 404)
        report = await repo.get_report(session, updated.report_id)
        return JSONResponse({
            "success": True,
            "comparison": repo.to_result(updated).to_wire(),
            "summary": report.summary if report is not None else None,
        })
    except Exception:
        log.exception("Error updating comparison")
        return _error("Failed to update comparison", 500)


@router.delete("/api/reports")
async def delete_report(id: Optional[str] = Query(None), session: AsyncSession = Depends(get_session)):
    try:
        if not id:
            return _error("Report ID is required", 400)
        if not await repo.delete_report(session, id):
            return _error("Report not found", 404)
        return JSONResponse({"success": True})
    except Exception:
        log.exception("Error deleting report")
        return _error("Failed to delete report", 500)
