import asyncio
import json

import pytest

from cdemaker.comparison_models import ExtractedRow, PageImage
from cdemaker.services.comparison import plan_batches, run_comparison
from cdemaker.services.errors import RateLimitedError, TerminalModelError
from cdemaker.services.providers import ModelClient

from conftest import ScriptedModel, findings_json


def _rows(n):
    return [ExtractedRow(id=f"r{i}", field=f"F{i}", value=str(i)) for i in range(1, n + 1)]


def _pages(n):
    return [PageImage(base64="x", mime_type="image/png", page_number=i) for i in range(1, n + 1)]


def test_plan_pages_outer_rows_inner():
    batches = plan_batches(_rows(3), list(reversed(_pages(3))), rows_per_batch=2, pages_per_batch=2)
    shape = [([r.id for r in b.rows], b.start_page, b.end_page) for b in batches]
    assert shape == [
        (["r1", "r2"], 1, 2),
        (["r3"], 1, 2),
        (["r1", "r2"], 3, 3),
        (["r3"], 3, 3),
    ]
    assert [b.index for b in batches] == [0, 1, 2, 3]


def test_plan_rejects_bad_sizes():
    with pytest.raises(ValueError):
        plan_batches(_rows(1), _pages(1), 0, 1)


class PageEcho(ModelClient):
    """Reports every spec in the prompt as found on the first page of its batch."""

    def __init__(self, fail_on_start_page=None):
        self.fail_on_start_page = fail_on_start_page

    async def generate(self, parts):
        labels = parts[1]["text"]
        start = int(labels.split("[Page ")[1].split("]")[0])
        if start == self.fail_on_start_page:
            raise TerminalModelError("400 bad image")
        ids = [line.split("(ID: ")[1].rstrip("):") for line in parts[0]["text"].splitlines() if line.startswith("SPEC #")]
        return json.dumps({"findings": [
            {"specId": i, "pageNumber": start, "value": f"p{start}", "confidence": "medium", "status": "deviate",
             "explanation": f"page {start}"} for i in ids
        ]})


def test_findings_merged_in_issue_order():
    report = asyncio.run(run_comparison(PageEcho(), _rows(3), _pages(4), rows_per_batch=2, pages_per_batch=2))
    assert report.batches_run == 4
    assert report.total_findings == 6
    assert report.errors == []
    r1 = report.results[0]
    assert [f.page_number for f in r1.findings] == [1, 3]
    assert r1.submittal_value == "p1"
    assert report.summary.deviate == 3


def test_failed_batch_does_not_abort_run():
    report = asyncio.run(run_comparison(PageEcho(fail_on_start_page=1), _rows(2), _pages(2), rows_per_batch=2, pages_per_batch=1))
    assert len(report.errors) == 1
    err = report.errors[0]
    assert (err.batch_index, err.start_page, err.kind, err.attempts) == (0, 1, "terminal", 1)
    assert err.row_ids == ["r1", "r2"]
    assert all(r.match_confidence == "medium" for r in report.results)
    assert report.results[0].submittal_location.page_number == 2


def test_rate_limited_batch_exhausts_then_continues(sleeper):
    model = ScriptedModel([RateLimitedError("429")] * 4 + [findings_json({"specId": "r1", "pageNumber": 2, "value": "ok"})])
    report = asyncio.run(run_comparison(model, _rows(1), _pages(2), rows_per_batch=1, pages_per_batch=1, sleep=sleeper))
    assert sleeper.delays == [1.0, 2.0, 4.0]
    assert report.errors[0].kind == "rate_limited"
    assert report.errors[0].attempts == 4
    assert report.results[0].submittal_value == "ok"
    wire = report.to_wire()
    assert wire["batchesRun"] == 2
    assert wire["errors"][0]["rowIds"] == ["r1"]


def test_batch_end_page_is_last_page_number():
    gapped = [PageImage(base64="A", mime_type="image/png", page_number=n) for n in (3, 7, 12)]
    batches = plan_batches(_rows(1), gapped, rows_per_batch=1, pages_per_batch=2)
    assert [(b.start_page, b.end_page) for b in batches] == [(3, 7), (12, 12)]
