"""Shared fixtures: settings, in-memory images and a fake chat-completions session."""

from __future__ import annotations

import io
import json
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from PIL import Image

from shelfscan.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="test-key",
        openai_base_url="https://llm.test/v1",
        openai_model="gpt-test",
        environment="test",
    )


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    def _make(width: int = 64, height: int = 48, fmt: str = "PNG", mode: str = "RGB", color=(200, 30, 30)) -> bytes:
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make


def make_response(status_code: int = 200, body: Any = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = json.dumps(body).encode("utf-8") if body is not None else b""
    resp.headers["Content-Type"] = "application/json"
    resp.url = "https://llm.test/v1/chat/completions"
    return resp


def completion(content: Any) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeSession:
    """Stands in for requests.Session; records every POST and replays queued outcomes."""

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def queue(self, outcome: Any) -> None:
        self.outcomes.append(outcome)

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, requests.Response):
            return outcome
        return make_response(200, completion(outcome))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()
