from __future__ import annotations

from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _run_from_project_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Default config/pattern/prompt paths are relative to the repository root."""
    monkeypatch.chdir(PROJECT_ROOT)
