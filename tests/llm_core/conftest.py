from __future__ import annotations

import pytest

from llm_core.settings import LLMSettings
from tests.llm_core.support.fakes import FakeClock, FakeLogger, RecordingSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fixed-start clock per test."""
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a backoff sleep that never actually waits."""
    return RecordingSleep()


@pytest.fixture
def settings() -> LLMSettings:
    """Provide isolated transport settings per test."""
    return LLMSettings(
        max_retries=3,
        breaker_failure_threshold=5,
        breaker_cooldown_seconds=30,
        breaker_success_threshold=2,
    )
