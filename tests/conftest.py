# tests/conftest.py
from __future__ import annotations
import json
from typing import List, Union

import pytest
from fastapi.testclient import TestClient

from cdemaker.comparison_models import ExtractedRow, PageImage
from cdemaker.config import AppConfig
from cdemaker.main import create_app
from cdemaker.services.auth import AuthCapability
from cdemaker.services.providers import ModelClient


class ScriptedModel(ModelClient):
    """Replays canned responses; an Exception entry is raised instead of returned."""
    name = "scripted"

    def __init__(self, script: List[Union[str, Exception]], repeat_last: bool = False):
        self.script = list(script)
        self.repeat_last = repeat_last
        self.calls: List[list] = []

    async def generate(self, parts):
        self.calls.append(parts)
        if len(self.script) > 1 or not self.repeat_last:
            item = self.script.pop(0)
        else:
            item = self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def findings_json(*findings: dict) -> str:
    return json.dumps({"findings": list(findings)})


@pytest.fixture
def rows() -> List[ExtractedRow]:
    return [
        ExtractedRow(id="r1", field="Voltage", value="120V", unit="V", section="Electrical"),
        ExtractedRow(id="r2", field="Warranty", value="1 year parts and labor"),
    ]


@pytest.fixture
def pages() -> List[PageImage]:
    return [
        PageImage(base64="AAAA", mime_type="image/png", page_number=1),
        PageImage(base64="BBBB", mime_type="image/png", page_number=2),
    ]


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(tmp_path):
    opened = []

    def _make(model: ModelClient, auth: AuthCapability | None = None, **overrides) -> TestClient:
        config = AppConfig(db_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", initial_retry_delay_ms=1, **overrides)
        app = create_app(config=config, model_client=model, auth=auth or AuthCapability(enabled=False))
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for c in opened:
        c.__exit__(None, None, None)
