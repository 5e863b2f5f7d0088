"""
Runtime settings.

Every numeric threshold used by the ensemble, the cascade and the
corroboration checks lives here so it can be tuned per corpus through
CURTAINCALL_* environment variables (or a .env file) instead of code edits.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

ENV_PREFIX = "CURTAINCALL_"


@dataclass(frozen=True)
class Settings:
    # Ensemble
    spread_threshold: float = 5.0
    two_model_delta_threshold: float = 15.0
    neutral_score: int = 62

    # Cascade
    excerpt_length_floor: int = 300

    # Corroboration
    corroboration_tolerance: float = 0.10

    # Batch execution
    model_timeout: float = 60.0
    model_max_retries: int = 3
    checkpoint_every: int = 25
    scoring_version: str = "v1"
    # label -> JSON endpoint, from CURTAINCALL_MODELS="claude=https://...,gpt=https://..."
    model_endpoints: Tuple[Tuple[str, str], ...] = ()

    # Paths
    db_path: Path = field(default_factory=lambda: Path("data/reviews.db"))
    alias_path: Optional[Path] = None
    log_dir: Path = field(default_factory=lambda: Path("logs"))


def _read(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _as_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _read(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}")


def _as_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _read(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}")


def _as_endpoints(env: Mapping[str, str], name: str) -> Tuple[Tuple[str, str], ...]:
    raw = _read(env, name)
    if raw is None:
        return ()
    endpoints = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        label, sep, url = item.partition("=")
        label, url = label.strip(), url.strip()
        if not sep or not label or not url:
            raise ValueError(f"{ENV_PREFIX}{name} entries must look like label=url, got {item!r}")
        if any(label == known for known, _ in endpoints):
            raise ValueError(f"{ENV_PREFIX}{name} lists model {label!r} twice")
        endpoints.append((label, url))
    return tuple(endpoints)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env: Mapping to read from (default: os.environ)

    Returns:
        Settings with defaults for every unset variable

    Raises:
        ValueError: If a variable is set to a value of the wrong type
    """
    env = os.environ if env is None else env
    defaults = Settings()

    alias_raw = _read(env, "ALIAS_PATH")
    db_raw = _read(env, "DB_PATH")
    log_raw = _read(env, "LOG_DIR")

    settings = Settings(
        spread_threshold=_as_float(env, "SPREAD_THRESHOLD", defaults.spread_threshold),
        two_model_delta_threshold=_as_float(
            env, "TWO_MODEL_DELTA_THRESHOLD", defaults.two_model_delta_threshold
        ),
        neutral_score=_as_int(env, "NEUTRAL_SCORE", defaults.neutral_score),
        excerpt_length_floor=_as_int(env, "EXCERPT_LENGTH_FLOOR", defaults.excerpt_length_floor),
        corroboration_tolerance=_as_float(
            env, "CORROBORATION_TOLERANCE", defaults.corroboration_tolerance
        ),
        model_timeout=_as_float(env, "MODEL_TIMEOUT", defaults.model_timeout),
        model_max_retries=_as_int(env, "MODEL_MAX_RETRIES", defaults.model_max_retries),
        checkpoint_every=_as_int(env, "CHECKPOINT_EVERY", defaults.checkpoint_every),
        scoring_version=_read(env, "SCORING_VERSION") or defaults.scoring_version,
        model_endpoints=_as_endpoints(env, "MODELS"),
        db_path=Path(db_raw) if db_raw else defaults.db_path,
        alias_path=Path(alias_raw) if alias_raw else None,
        log_dir=Path(log_raw) if log_raw else defaults.log_dir,
    )

    if not 0 <= settings.neutral_score <= 100:
        raise ValueError(f"{ENV_PREFIX}NEUTRAL_SCORE must be within 0-100")
    if settings.checkpoint_every < 1:
        raise ValueError(f"{ENV_PREFIX}CHECKPOINT_EVERY must be at least 1")
    return settings
