"""
Pytest configuration and fixtures for chunk-relay tests.
"""

import json
from pathlib import Path
from typing import Callable

import httpx
import pytest

from chunk_relay.api_client import CompletionClient
from chunk_relay.config import RelayConfig
from chunk_relay.models import ModelDescriptor, ModelRegistry
from chunk_relay.processor import FileProcessor
from chunk_relay.progress import ProgressTracker
from chunk_relay.rate_limiter import RateLimiter


TEST_ENDPOINT = "https://api.example.test/v1/chat/completions"


class FakeClock:
    """Manually advanced wall clock (seconds) with a matching async sleep."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def completion_response(content: str, usage: dict | None = None, status_code: int = 200) -> httpx.Response:
    """Build a chat-completion response."""
    body = {
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
    if usage is not None:
        body["usage"] = usage
    return httpx.Response(status_code, json=body)


def request_message(request: httpx.Request) -> str:
    """The user message sent in a captured request."""
    return json.loads(request.content)["messages"][0]["content"]


@pytest.fixture
def relay_config(tmp_path: Path) -> RelayConfig:
    """Create a test configuration."""
    return RelayConfig(
        api_key="test-api-key",
        api_endpoint=TEST_ENDPOINT,
        default_model="test-model",
        data_dir=str(tmp_path / "data"),
        models_path=str(tmp_path / "models.json"),
        request_timeout_seconds=5,
        default_retry_after_seconds=60,
        max_rate_limit_retries=3,
    )


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry with a small model and a rate-limited model."""
    return ModelRegistry([
        ModelDescriptor(key="test-model", token_limit=10_000, rpm=100, tpm=1_000_000),
        ModelDescriptor(key="slow-model", token_limit=10_000, rpm=2, tpm=100_000),
    ])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(registry: ModelRegistry, clock: FakeClock) -> RateLimiter:
    return RateLimiter(registry, clock=clock, sleep=clock.sleep)


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker(history_limit=10)


@pytest.fixture
def make_processor(
    relay_config: RelayConfig,
    registry: ModelRegistry,
    tracker: ProgressTracker,
    rate_limiter: RateLimiter,
    clock: FakeClock,
) -> Callable[[Callable[[httpx.Request], httpx.Response]], FileProcessor]:
    """Build a FileProcessor whose API calls are answered by handler."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> FileProcessor:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = CompletionClient(relay_config, rate_limiter, http_client=http_client, sleep=clock.sleep)
        return FileProcessor(
            relay_config,
            registry=registry,
            tracker=tracker,
            rate_limiter=rate_limiter,
            client=client,
        )

    return factory


@pytest.fixture
def sample_srt() -> str:
    """Subtitle content with 200 cues."""
    blocks = []
    for i in range(1, 201):
        seconds = i * 3
        start = f"00:{seconds // 60:02d}:{seconds % 60:02d},000"
        end = f"00:{(seconds + 2) // 60:02d}:{(seconds + 2) % 60:02d},500"
        blocks.append(f"{i}\n{start} --> {end}\nThis is subtitle line number {i}.\n")
    return "\n".join(blocks)
