from __future__ import annotations

import pytest

from actionlens.ai.base import AiBackendError
from actionlens.config import Settings
from tests.fakes import FakeBackend


@pytest.fixture
def config() -> Settings:
    """Defaults from code only, with a short debounce so timer tests stay fast."""
    return Settings(_env_file=None, debounce_ms=20)  # type: ignore[call-arg]


@pytest.fixture
def failing_backend() -> FakeBackend:
    return FakeBackend(error=AiBackendError("connection refused"))


@pytest.fixture
def offline_backend() -> FakeBackend:
    return FakeBackend(available=False)
