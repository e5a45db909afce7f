"""Configuration management for the mathprep pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _get_base_dir() -> Path:
    """Project root (one level above ``core/``)."""
    return Path(__file__).resolve().parents[1]


# Load .env from the project root before any setting is read
_env_path = _get_base_dir() / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class HeuristicLimits:
    """Empirically tuned thresholds used by the sanitizer heuristics.

    None of these values are load-bearing on their own; they are exposed so a
    deployment can re-tune them against its own corpus of exam content.
    """

    # Complexity classifier
    max_brace_depth: int = _env_int("MATHPREP_MAX_BRACE_DEPTH", 3)
    max_inline_operators: int = _env_int("MATHPREP_MAX_INLINE_OPERATORS", 2)
    max_inline_length: int = _env_int("MATHPREP_MAX_INLINE_LENGTH", 40)

    # Text/math separator
    second_chance_length: int = _env_int("MATHPREP_SECOND_CHANCE_LENGTH", 30)
    prose_ratio: float = _env_float("MATHPREP_PROSE_RATIO", 0.6)
    prose_min_length: int = _env_int("MATHPREP_PROSE_MIN_LENGTH", 15)

    # Artifact repairer / equation formatter / matrix reconstructor
    continuation_max_length: int = _env_int("MATHPREP_CONTINUATION_MAX_LENGTH", 50)
    max_split_rows: int = _env_int("MATHPREP_MAX_SPLIT_ROWS", 4)
    min_matrix_cells: int = _env_int("MATHPREP_MIN_MATRIX_CELLS", 4)


@dataclass
class Settings:
    """Application settings."""

    base_dir: Path = _get_base_dir()
    log_dir: Path = base_dir / "logs"
    host: str = os.getenv("MATHPREP_HOST", "127.0.0.1")
    port: int = int(os.getenv("MATHPREP_PORT", "8000"))
    log_level: str = os.getenv("MATHPREP_LOG_LEVEL", "INFO")
    # Typesetting engine (latex2mathml) pinned by major version
    engine_package: str = "latex2mathml"
    engine_version: str = os.getenv("MATHPREP_ENGINE_VERSION", "3")
    engine_settle_delay: float = _env_float("MATHPREP_ENGINE_SETTLE_DELAY", 0.1)
    strip_unsafe_markup: bool = os.getenv("MATHPREP_STRIP_UNSAFE_MARKUP", "true").lower() == "true"
    limits: HeuristicLimits = field(default_factory=HeuristicLimits)


settings = Settings()
