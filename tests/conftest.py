"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import io
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def completion_body(content: Optional[str]) -> Dict[str, Any]:
    """A minimal chat completion response with one choice."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps the decoded JSON body of every request."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []
        self.bodies: List[Dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            self.bodies.append(json.loads(request.content))
            return respond(request)

        super().__init__(handler)


@pytest.fixture
def reply_transport() -> Callable[..., RecordingTransport]:
    """Factory for a transport answering every request with the given replies in turn."""

    def make(*replies: str) -> RecordingTransport:
        queue = list(replies)

        def respond(request: httpx.Request) -> httpx.Response:
            content = queue.pop(0) if len(queue) > 1 else queue[0]
            return httpx.Response(200, json=completion_body(content))

        return RecordingTransport(respond)

    return make


@pytest.fixture
def screen() -> io.StringIO:
    """In-memory terminal."""
    return io.StringIO()


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in ["CHAT_CLIENT_CONFIG", "OPENAI_API_KEY"]:
        # setenv first so teardown also removes values a test (or .env) adds
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    for key in list(os.environ):
        if key.startswith("CHAT_CLIENT__"):
            monkeypatch.delenv(key)
    yield
