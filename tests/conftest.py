"""
pytest shared fixtures

Usage:
    def test_something(config, make_session, sample_document):
        session = make_session(lambda method, url, params: FakeResponse(json_data={...}))
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from storylab.config import StoryLabConfig
from storylab.entities import Frame, FrameMetadata
from storylab.llm_client import BaseLlmClient


# ============================================================================
# HTTP fakes
# ============================================================================

class FakeResponse:
    """Just enough of requests.Response for the clients under test."""

    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = None,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        reason: str = "OK",
        url: str = "",
    ):
        self.status_code = status_code
        self._json = json_data
        self.content = content if content or json_data is None else json.dumps(json_data).encode()
        self.headers = headers or {}
        self.reason = reason
        self.url = url
        self.closed = False

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return self._json

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


Handler = Callable[[str, str, Optional[Dict[str, Any]]], FakeResponse]


class FakeSession:
    """Routes every request to `handler(method, url, params)` and records it."""

    def __init__(self, handler: Handler):
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method, url, headers=None, params=None, timeout=None, stream=False, json=None):
        self.calls.append({
            "method": method.upper(),
            "url": url,
            "headers": headers or {},
            "params": params,
            "timeout": timeout,
            "json": json,
        })
        return self.handler(method.upper(), url, params)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        self.closed = True


class FakeLlm(BaseLlmClient):
    """Scripted generation backend: answers come from `replies` in order, the last one repeats."""

    provider = "fake"
    model_name = "fake-model"

    def __init__(self, replies: Sequence[Any] = ("[]",), healthy: bool = True):
        self.replies = list(replies)
        self.healthy = healthy
        self.prompts: List[str] = []
        self.images: List[Optional[Sequence[str]]] = []
        self.last_usage = None
        self.closed = False

    @property
    def url(self) -> str:
        return "http://fake-llm"

    def generate(self, prompt, images=None):
        self.prompts.append(prompt)
        self.images.append(images)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def is_healthy(self) -> bool:
        return self.healthy

    def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config() -> StoryLabConfig:
    """Config with a token and no size probing."""
    return StoryLabConfig(figma_token="test-token", probe_image_sizes=False)


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_session() -> Callable[[Handler], FakeSession]:
    return FakeSession


@pytest.fixture
def fake_llm():
    return FakeLlm


def frame_node(node_id: str, name: str, children: Optional[list] = None, node_type: str = "FRAME",
               width: float = 375, height: float = 812) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "id": node_id,
        "name": name,
        "type": node_type,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": width, "height": height},
    }
    if children is not None:
        node["children"] = children
    return node


@pytest.fixture
def make_frame_node():
    return frame_node


@pytest.fixture
def sample_document() -> Dict[str, Any]:
    """F1 (top level) with child F2, then sibling F3, plus noise nodes."""
    return {
        "id": "0:0",
        "type": "DOCUMENT",
        "name": "Document",
        "children": [
            {
                "id": "0:1",
                "type": "CANVAS",
                "name": "Page 1",
                "children": [
                    frame_node("1:1", "F1", children=[
                        {"id": "1:5", "type": "TEXT", "name": "Title"},
                        frame_node("1:2", "F2", children=[]),
                    ]),
                    {"id": "1:6", "type": "RECTANGLE", "name": "Background"},
                    frame_node("1:3", "F3"),
                ],
            }
        ],
    }


@pytest.fixture
def sample_frames() -> List[Frame]:
    return [
        Frame(id=f"1:{i}", name=f"Screen {i}", image_url=f"https://img.example/{i}.png",
              metadata=FrameMetadata(width=375, height=812, type="FRAME"))
        for i in range(1, 4)
    ]
