"""Shared pytest fixtures for Switchyard tests."""

from pathlib import Path

import pytest

import switchyard.config as config_module
from switchyard.cache import LocalCache, TieredCache
from switchyard.config import Settings, reset_settings
from switchyard.intent import IntentClassifier


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep the user's config file and the settings singleton out of tests."""
    monkeypatch.setattr(config_module, "CONFIG_FILE_PATH", tmp_path / "missing.toml")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def classifier(settings: Settings) -> IntentClassifier:
    """Classifier trained on the built-in corpus."""
    return IntentClassifier.from_examples(settings=settings)


@pytest.fixture
async def cache(clock: FakeClock):
    """Local-only TieredCache on a fake clock, closed after the test."""
    tiered = TieredCache(local=LocalCache(clock=clock))
    yield tiered
    await tiered.close()
