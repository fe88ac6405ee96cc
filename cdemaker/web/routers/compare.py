from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
import logging
from fastapi import APIRouter, Depends, Request
from pydantic import TypeAdapter, ValidationError
from starlette.responses import JSONResponse

from cdemaker.comparison_models import ExtractedRow, PageImage
from cdemaker.config import AppConfig
from cdemaker.services.aggregate import aggregate_row_results
from cdemaker.services.comparison import run_comparison
from cdemaker.services.providers import ModelClient
from cdemaker.services.retry import RetryPolicy, compare_batch_with_retry

log = logging.getLogger(__name__)
router = APIRouter()

_rows_adapter = TypeAdapter(List[ExtractedRow])
_pages_adapter = TypeAdapter(List[PageImage])


def get_model_client(request: Request) -> ModelClient:
    return request.app.state.model_client


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _policy(config: AppConfig) -> RetryPolicy:
    return RetryPolicy(max_retries=config.max_retries, initial_delay_ms=config.initial_retry_delay_ms)


def _parse_inputs(body: Dict[str, Any]) -> Tuple[Optional[List[ExtractedRow]], Optional[List[PageImage]], Optional[JSONResponse]]:
    raw_rows, raw_pages = body.get("specRows"), body.get("submittalPages")
    if not raw_rows:
        return None, None, _error("Spec rows are required", 400)
    if not raw_pages:
        return None, None, _error("Submittal pages are required", 400)
    try:
        rows = _rows_adapter.validate_python(raw_rows)
    except ValidationError as e:
        return None, None, _error("Invalid spec rows", 400, details=e.errors(include_url=False, include_context=False))
    try:
        pages = _pages_adapter.validate_python(raw_pages)
    except ValidationError as e:
        return None, None, _error("Invalid submittal pages", 400, details=e.errors(include_url=False, include_context=False))
    return rows, pages, None


def _batch_size(body: Dict[str, Any], key: str, default: int) -> Optional[int]:
    """body[key] as a positive int, default when absent or null, None when invalid."""
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        return None
    return value


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/api/compare-batch")
async def compare_batch(
    request: Request,
    client: ModelClient = Depends(get_model_client),
    config: AppConfig = Depends(get_config),
):
    try:
        body = await _json_body(request)
        rows, pages, err = _parse_inputs(body)
        if err is not None:
            return err

        batch_start_page = pages[0].page_number or 1
        log.info("[compare-batch] Processing %d specs against %d pages", len(rows), len(pages))
        batch_info = body.get("batchInfo")
        if isinstance(batch_info, dict) and "batchIndex" in batch_info:
            log.info("[compare-batch] Page batch %s/%s", int(batch_info["batchIndex"]) + 1, batch_info.get("totalBatches"))

        outcome = await compare_batch_with_retry(client, rows, pages, batch_start_page, policy=_policy(config))
        results = aggregate_row_results(rows, outcome.findings)
        log.info("[compare-batch] Found %d total findings for %d specs", len(outcome.findings), len(rows))

        return JSONResponse({
            "success": True,
            "data": {
                "results": [r.to_wire() for r in results],
                "totalFindings": len(outcome.findings),
                "specsProcessed": len(rows),
                "pagesScanned": len(pages),
                "error": outcome.error,
            },
        })
    except Exception:
        log.exception("Batch comparison error")
        return _error("Comparison failed", 500)


@router.post("/api/compare")
async def compare_all(
    request: Request,
    client: ModelClient = Depends(get_model_client),
    config: AppConfig = Depends(get_config),
):
    try:
        body = await _json_body(request)
        rows, pages, err = _parse_inputs(body)
        if err is not None:
            return err
        rows_per_batch = _batch_size(body, "rowsPerBatch", config.rows_per_batch)
        pages_per_batch = _batch_size(body, "pagesPerBatch", config.pages_per_batch)
        if rows_per_batch is None or pages_per_batch is None:
            return _error("Batch sizes must be positive integers", 400)

        report = await run_comparison(
            client, rows, pages,
            rows_per_batch=rows_per_batch, pages_per_batch=pages_per_batch, policy=_policy(config),
        )
        return JSONResponse({"success": True, "data": report.to_wire()})
    except Exception:
        log.exception("Comparison run error")
        return _error("Comparison failed", 500)


@router.post("/api/compare-single")
async def compare_single(
    request: Request,
    client: ModelClient = Depends(get_model_client),
    config: AppConfig = Depends(get_config),
):
    """One spec row against every submittal page, in page batches.

    With scanAllPages false only the first batch of pages is searched.
    """
    try:
        body = await _json_body(request)
        raw_row, raw_pages = body.get("specRow"), body.get("submittalPages")
        if not raw_row:
            return _error("Spec row is required", 400)
        if not raw_pages:
            return _error("Submittal pages are required", 400)
        try:
            row = ExtractedRow.model_validate(raw_row)
        except ValidationError as e:
            return _error("Invalid spec row", 400, details=e.errors(include_url=False, include_context=False))
        try:
            pages = sorted(_pages_adapter.validate_python(raw_pages), key=lambda p: p.page_number)
        except ValidationError as e:
            return _error("Invalid submittal pages", 400, details=e.errors(include_url=False, include_context=False))

        per_batch = config.single_pages_per_batch
        if body.get("scanAllPages") is False:
            pages = pages[:per_batch]
        log.info("[compare-single] Comparing: %s = %s over %d pages", row.field, row.value, len(pages))

        report = await run_comparison(
            client, [row], pages, rows_per_batch=1, pages_per_batch=per_batch, policy=_policy(config),
        )
        log.info("[compare-single] Found %d total findings", report.total_findings)
        data = {
            **report.results[0].to_wire(),
            "totalFindings": report.total_findings,
            "batchesProcessed": report.batches_run,
            "pagesScanned": len(pages),
        }
        if report.errors:
            data["errors"] = [f"Batch {e.batch_index + 1}: {e.error}" for e in report.errors]
        return JSONResponse({"success": True, "data": data})
    except Exception:
        log.exception("Single comparison error")
        return _error("Comparison failed", 500)
