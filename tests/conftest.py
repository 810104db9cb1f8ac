import os, sys
from pathlib import Path

import pytest

# Add src/ to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# Ensure required environment variables for gurulo.config.core
os.environ.setdefault("OPENAI_API_KEY", "test-openai")
os.environ.setdefault("MSG_MODEL_ID", "test-model")


class FakeClock:
    """Manually advanced time source for TTL and window tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
