"""
Pytest configuration and shared fixtures for decision bridge tests.

Provides:
- A config factory with short deadlines
- Fake completion clients with call counting and controllable latency
"""
import threading
import time
from typing import List, Optional

import pytest

from bridge_config import BridgeConfig
from llm.prompt import STRUCTURED_RULES_PROMPT

SECRET = "test-secret"

BUY_REPLY = '{"decision": "BUY", "sl": 2935.0, "tp": 2980.0, "lot_size": 0.08, "trail_active": false, "reason": "Bullish"}'


def build_config(**overrides) -> BridgeConfig:
    values = dict(
        host="127.0.0.1",
        port=3000,
        shared_secret=SECRET,
        llm_api_key="sk-test",
        llm_api_base_url="https://llm.example.com/v1/chat/completions",
        llm_api_type="openai",
        llm_model="gpt-4o",
        llm_temperature=0.2,
        llm_max_tokens=300,
        request_timeout=1.0,
        completion_timeout=0.5,
        instrument="XAUUSD",
        prompt_variant="structured",
        system_prompt=STRUCTURED_RULES_PROMPT,
        system_prompt_source={"type": "default"},
    )
    values.update(overrides)
    return BridgeConfig(**values)


class FakeCompletionClient:
    """Stands in for CompletionClient; records calls and replays a script."""

    def __init__(self, reply: str = BUY_REPLY, delay: float = 0.0, error: Optional[Exception] = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: List[str] = []
        self.finished = threading.Event()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def issue(self, system_prompt: str, market_context: str) -> str:
        self.calls.append(market_context)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.reply
        finally:
            self.finished.set()


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture
def make_client():
    return FakeCompletionClient
