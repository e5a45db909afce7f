"""Pytest configuration for tests."""
from __future__ import annotations

import html
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# This allows imports like "from services.latex..." to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from services.render.engine import EngineHandle, MathRenderError  # noqa: E402


class FakeEngine:
    """Deterministic stand-in for the typesetting engine."""

    name = "fake"
    version = "0"

    def __init__(self) -> None:
        self.calls = []

    def render_to_string(
        self,
        latex,
        display_mode=False,
        throw_on_error=True,
        strict="ignore",
        trust=False,
    ):
        self.calls.append((latex, display_mode))
        if "\\fail" in latex:
            raise MathRenderError("cannot render")
        mode = "display" if display_mode else "inline"
        return f'<span class="math-rendered" data-mode="{mode}">{html.escape(latex)}</span>'


class CountingLoader:
    """Loader that counts invocations and can be told to fail."""

    def __init__(self, engine=None, fail=False) -> None:
        self.engine = engine or FakeEngine()
        self.fail = fail
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("engine script unavailable")
        return self.engine


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def ready_handle(fake_engine: FakeEngine) -> EngineHandle:
    return EngineHandle.from_engine(fake_engine)
