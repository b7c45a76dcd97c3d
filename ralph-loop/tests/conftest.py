"""Shared pytest fixtures for the Ralph loop test suite.

Non-fixture helpers (record builders, Popen mocks) are in helpers.py.
"""

import sys
from pathlib import Path

import pytest

# Add the tests directory to sys.path so test files can import helpers.py
sys.path.insert(0, str(Path(__file__).parent))

from config import RunnerConfig  # noqa: E402


@pytest.fixture
def prompt_file(tmp_path: Path) -> Path:
    path = tmp_path / "prompt.md"
    path.write_text("Fix the next failing test.\n", encoding="utf-8")
    return path


@pytest.fixture
def config(prompt_file: Path) -> RunnerConfig:
    """Config pointing at a temp prompt, with no delay between iterations."""
    return RunnerConfig(
        prompt_file=prompt_file,
        limits={"max_iterations": 3, "retry_delay_seconds": 0},
    )
