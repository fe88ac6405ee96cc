from __future__ import annotations
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Optional, Sequence
import json
import logging

from jsonschema import Draft7Validator

from cdemaker.comparison_models import BatchFinding, BoundingBox, ExtractedRow, PageImage
from cdemaker.services.errors import ErrorKind, TerminalModelError, classify_error
from cdemaker.services.prompt import build_batch_prompt, build_page_labels, page_numbers
from cdemaker.services.providers import ModelClient, image_part, text_part

log = logging.getLogger(__name__)

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {"findings": {"type": ["array", "null"]}},
}

FINDING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["specId", "pageNumber", "value"],
    "properties": {
        "specId": {"type": "string", "minLength": 1},
        "pageNumber": {"type": "integer"},
        "value": {"type": ["string", "number"], "minLength": 1},
        "unit": {"type": ["string", "number", "null"]},
        "confidence": {"enum": ["high", "medium", "low", None]},
        "status": {"enum": ["comply", "deviate", "exception", "pending", "not_found", None]},
        "explanation": {"type": ["string", "null"]},
        "boundingBox": {
            "type": ["object", "null"],
            "properties": {k: {"type": "number"} for k in ("x", "y", "width", "height")},
        },
    },
}

_response_validator = Draft7Validator(RESPONSE_SCHEMA)
_finding_validator = Draft7Validator(FINDING_SCHEMA)


@dataclass
class BatchOutcome:
    findings: List[BatchFinding] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None


def _extract_json(text: str) -> Dict[str, Any]:
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise TerminalModelError(f"No valid JSON found in response: {text[:200]!r}")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise TerminalModelError(f"Malformed JSON in response: {e}") from e
    errs = sorted(_response_validator.iter_errors(data), key=lambda e: list(e.path))
    if errs:
        raise TerminalModelError(f"Unexpected response shape: {errs[0].message}")
    return data


def _to_finding(raw: Dict[str, Any]) -> BatchFinding:
    bbox = raw.get("boundingBox")
    unit = raw.get("unit")
    return BatchFinding(
        spec_id=raw["specId"],
        page_number=int(raw["pageNumber"]),
        value=str(raw["value"]),
        unit=str(unit) if unit not in (None, "") else None,
        confidence=raw.get("confidence") or "medium",
        bounding_box=BoundingBox(**bbox) if isinstance(bbox, dict) else None,
        status=raw.get("status") or "deviate",
        explanation=raw.get("explanation") or "Found in submittal",
    )


def parse_findings(
    data: Dict[str, Any],
    spec_rows: Sequence[ExtractedRow],
    valid_pages: AbstractSet[int],
) -> List[BatchFinding]:
    """Keep only findings that belong to this batch.

    A finding naming a spec id outside the batch is dropped, never
    re-attributed to another row, and so is one naming a page that was not
    sent with the batch.
    """
    valid_ids = {r.id for r in spec_rows}
    findings: List[BatchFinding] = []
    for raw in data.get("findings") or []:
        errs = list(_finding_validator.iter_errors(raw))
        if errs:
            log.warning("[compare-batch] dropping malformed finding (%s): %r", errs[0].message, raw)
            continue
        if raw["specId"] not in valid_ids:
            log.warning("[compare-batch] dropping finding for unknown specId %r", raw["specId"])
            continue
        if int(raw["pageNumber"]) not in valid_pages:
            log.warning("[compare-batch] dropping finding on page %s outside this batch", raw["pageNumber"])
            continue
        findings.append(_to_finding(raw))
    return findings


def build_parts(spec_rows: Sequence[ExtractedRow], pages: Sequence[PageImage]) -> list:
    parts = [
        text_part(build_batch_prompt(spec_rows, pages)),
        text_part(build_page_labels(pages)),
    ]
    parts.extend(image_part(p.base64, p.mime_type) for p in pages)
    return parts


async def execute_batch(
    client: ModelClient,
    spec_rows: Sequence[ExtractedRow],
    pages: Sequence[PageImage],
    batch_start_page: int,
    retry_count: int = 0,
) -> BatchOutcome:
    """One model call comparing spec_rows against pages. Never raises for model errors.

    Findings are numbered by each page's own page_number; batch_start_page
    names the batch in logs.
    """
    if not spec_rows:
        raise ValueError("spec_rows must not be empty")
    if not pages:
        raise ValueError("pages must not be empty")

    parts = build_parts(spec_rows, pages)
    try:
        text = await client.generate(parts)
        data = _extract_json(text)
    except Exception as e:
        err = classify_error(e)
        log.info("[compare-batch] attempt %d from page %d failed (%s): %s", retry_count, batch_start_page, err.kind, err.message)
        return BatchOutcome(error=err.message, error_kind=err.kind, attempts=retry_count + 1)

    findings = parse_findings(data, spec_rows, set(page_numbers(pages)))
    return BatchOutcome(findings=findings, attempts=retry_count + 1)
