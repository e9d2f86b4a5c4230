from typing import Dict, List

import httpx
import pytest

from plant_identifier.config import Settings


def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeClock:
    """Monotonic clock advanced only by recorded sleeps."""

    def __init__(self):
        self.now = 0.0
        self.delays: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay


class ScriptedGemini:
    """MockTransport handler replaying a per-model script of responses.

    Script items: an int status code (error body), a str (200 with that
    candidate text), a dict (200 with that raw JSON body) or an exception
    instance to raise.
    """

    def __init__(self, script: Dict[str, list]):
        self.script = {model: list(items) for model, items in script.items()}
        self.calls: List[str] = []
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        model = request.url.path.rsplit("/", 1)[-1].split(":", 1)[0]
        self.calls.append(model)
        self.requests.append(request)
        queue = self.script.get(model)
        if not queue:
            raise AssertionError(f"Unexpected call to {model}")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return httpx.Response(item, json={"error": {"code": item, "message": f"status {item}"}})
        if isinstance(item, dict):
            return httpx.Response(200, json=item)
        return httpx.Response(200, json=gemini_body(item))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="test-key",
        primary_model="model-a",
        fallback_models=["model-b", "model-c", "model-d"],
        max_retries=3,
        base_delay_seconds=1.0,
        fallback_delay_seconds=0.5,
        time_budget_seconds=60.0,
    )


@pytest.fixture
def clock():
    return FakeClock()
