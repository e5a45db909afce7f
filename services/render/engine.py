"""
Typesetting engine binding.

The engine (latex2mathml) is never imported at module load. An
``EngineHandle`` owns the one-time load: the first caller starts it, every
concurrent caller awaits the same in-flight future, and once loaded the
engine is reused for the life of the process.
"""
from __future__ import annotations

import asyncio
import importlib
import importlib.metadata
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from core.config import settings
from core.logger import logger
from utils.html_entity_utils import escape_attribute

RENDERED_CLASS = "math-rendered"
ERROR_CLASS = "math-error"

_UNTRUSTED_COMMANDS = re.compile(
    r"\\(?:href|url|includegraphics|htmlClass|htmlId|htmlStyle|htmlData)(?![A-Za-z])"
)


class EngineLoadError(RuntimeError):
    """The typesetting engine could not be loaded."""


class MathRenderError(ValueError):
    """The typesetting engine rejected a LaTeX body."""


class EngineState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class MathEngine(Protocol):
    name: str
    version: str

    def render_to_string(
        self,
        latex: str,
        display_mode: bool = False,
        throw_on_error: bool = True,
        strict: Union[bool, str] = "ignore",
        trust: bool = False,
    ) -> str:
        ...


def error_fragment(source: str) -> str:
    """Original delimited text, marked so it shows as plain text."""
    return f'<span class="{ERROR_CLASS}">{escape_attribute(source)}</span>'


class Latex2MathMLEngine:
    """LaTeX to MathML via latex2mathml."""

    name = "latex2mathml"

    def __init__(self, convert: Callable[..., str], version: str) -> None:
        self._convert = convert
        self.version = version

    def render_to_string(
        self,
        latex: str,
        display_mode: bool = False,
        throw_on_error: bool = True,
        strict: Union[bool, str] = "ignore",
        trust: bool = False,
    ) -> str:
        """
        Render one LaTeX body to a MathML fragment.

        Args:
            latex: Math body without delimiters.
            display_mode: Block layout instead of inline.
            throw_on_error: Raise ``MathRenderError`` on failure instead of
                returning an error-marked fragment.
            strict: Accepted for engine-contract compatibility; latex2mathml
                has no strict mode.
            trust: Allow link/graphics/raw-HTML commands.

        Returns:
            ``<span class="math-rendered ...">`` wrapping the MathML.
        """
        try:
            if not trust and _UNTRUSTED_COMMANDS.search(latex):
                raise MathRenderError(f"Untrusted command in: {latex[:80]}")
            mathml = self._convert(latex, display="block" if display_mode else "inline")
        except MathRenderError:
            if throw_on_error:
                raise
            return error_fragment(latex)
        except Exception as exc:  # noqa: BLE001
            if throw_on_error:
                raise MathRenderError(str(exc)) from exc
            return error_fragment(latex)

        mode = "math-display" if display_mode else "math-inline"
        return (
            f'<span class="{RENDERED_CLASS} {mode}" data-latex="{escape_attribute(latex)}">'
            f"{mathml}</span>"
        )


async def load_latex2mathml(settle_delay: Optional[float] = None) -> Latex2MathMLEngine:
    """Default loader: import latex2mathml off the event loop, check its version."""
    delay = settings.engine_settle_delay if settle_delay is None else settle_delay
    try:
        converter = await asyncio.to_thread(importlib.import_module, "latex2mathml.converter")
    except ImportError as exc:
        raise EngineLoadError(f"{settings.engine_package} is not installed") from exc

    try:
        version = importlib.metadata.version(settings.engine_package)
    except importlib.metadata.PackageNotFoundError:
        version = "unknown"
    if not version.startswith(settings.engine_version):
        logger.warning(
            "Expected %s %s.x, found %s",
            settings.engine_package,
            settings.engine_version,
            version,
        )

    await asyncio.sleep(delay)
    return Latex2MathMLEngine(converter.convert, version)


Loader = Callable[[], Awaitable[Any]]


class EngineHandle:
    """Load-once capability for the typesetting engine."""

    def __init__(self, loader: Optional[Loader] = None) -> None:
        self._loader = loader or load_latex2mathml
        self._engine: Optional[MathEngine] = None
        self._pending: Optional[asyncio.Future] = None

    @classmethod
    def from_engine(cls, engine: MathEngine) -> "EngineHandle":
        """A handle that is ready from the start."""
        handle = cls()
        handle._engine = engine
        return handle

    @property
    def state(self) -> EngineState:
        if self._engine is not None:
            return EngineState.READY
        if self._pending is not None and not self._pending.done():
            return EngineState.LOADING
        return EngineState.UNLOADED

    @property
    def engine(self) -> Optional[MathEngine]:
        return self._engine

    def is_ready(self) -> bool:
        return self._engine is not None

    async def acquire(self) -> MathEngine:
        """Return the engine, loading it first if needed.

        Concurrent callers share one in-flight load. A failed load leaves the
        handle unloaded so the next call retries.
        """
        if self._engine is not None:
            return self._engine
        loop = asyncio.get_running_loop()
        if self._pending is None or self._pending.get_loop() is not loop:
            self._pending = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._pending)

    async def _load(self) -> MathEngine:
        logger.info("Loading math engine")
        try:
            engine = await self._loader()
        except Exception as exc:
            self._pending = None
            logger.error("Math engine failed to load: %s", exc)
            if isinstance(exc, EngineLoadError):
                raise
            raise EngineLoadError(str(exc)) from exc
        self._engine = engine
        logger.info(
            "Math engine ready: %s %s",
            getattr(engine, "name", type(engine).__name__),
            getattr(engine, "version", "?"),
        )
        return engine


default_engine_handle = EngineHandle()
