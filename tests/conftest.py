"""Pytest fixtures for Auth Sentry tests."""

import pytest
from datetime import datetime, timedelta
from pathlib import Path

from auth_sentry.config import DetectorConfig
from auth_sentry.schema import LoginEvent, Outcome


BASE_TIME = datetime(2024, 3, 12, 10, 10, 0)


def make_event(
    identity: str = "192.168.1.10",
    seconds: float = 0,
    outcome: Outcome = Outcome.FAILED,
) -> LoginEvent:
    """Create a LoginEvent at BASE_TIME + seconds."""
    return LoginEvent(
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        source_identity=identity,
        outcome=outcome,
        raw=f"event for {identity}",
    )


@pytest.fixture
def config():
    """Default detector configuration."""
    return DetectorConfig()


@pytest.fixture
def reference_lines():
    """Log lines of the classic SOC brute-force example."""
    return [
        "2024-03-12 10:10:01 Failed login from 192.168.1.10",
        "2024-03-12 10:10:02 Failed login from 192.168.1.10",
        "2024-03-12 10:10:05 Failed login from 10.0.0.5",
        "2024-03-12 10:10:07 Failed login from 192.168.1.10",
    ]


@pytest.fixture
def tmp_log(tmp_path, reference_lines):
    """Write the reference lines to a temporary log file."""
    file_path = tmp_path / "auth.log"
    file_path.write_text("\n".join(reference_lines) + "\n", encoding="utf-8")
    return file_path


@pytest.fixture
def sample_log():
    """Path to the bundled sample log."""
    path = Path(__file__).parent.parent / "samples" / "sample_auth.log"
    if not path.exists():
        pytest.skip("Sample file not found")
    return path
