"""Engine configuration and logging setup."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import os
from pathlib import Path
import tempfile
from typing import Optional

from tickflow.errors import SchemaError


_MAX_ITERATIONS_ENV = "TICKFLOW_MAX_ITERATIONS"
_STORE_DIR_ENV = "TICKFLOW_STORE_DIR"
_LOG_LEVEL_ENV = "TICKFLOW_LOG_LEVEL"
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_MAX_ITERATIONS = 10_000


@dataclass(frozen=True)
class EngineConfig:
    """Runtime knobs for a Program.

    Attributes:
        max_iterations: Fixpoint passes allowed per tick; ``None`` disables the cutoff.
        store_dir: Directory for the disk-backed durable store.
        log_level: Level applied to the ``tickflow`` logger by ``configure_logging``.
        validate_outputs: Check declared expression outputs against targets when
            rules are built.
    """

    max_iterations: Optional[int] = DEFAULT_MAX_ITERATIONS
    store_dir: Optional[str] = None
    log_level: str = "WARNING"
    validate_outputs: bool = True

    def __post_init__(self) -> None:
        if self.max_iterations is not None:
            if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int):
                raise SchemaError("max_iterations must be an integer or None.")
            if self.max_iterations < 1:
                raise SchemaError("max_iterations must be at least 1.")
        level = str(self.log_level).strip().upper()
        if level not in _ALLOWED_LOG_LEVELS:
            raise SchemaError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}.")
        object.__setattr__(self, "log_level", level)

    @staticmethod
    def from_env(base: Optional["EngineConfig"] = None) -> "EngineConfig":
        """Overlay ``TICKFLOW_*`` environment variables on ``base``."""

        config = base or EngineConfig()
        raw_max = os.environ.get(_MAX_ITERATIONS_ENV)
        if raw_max is not None:
            raw_max = raw_max.strip()
            if raw_max.lower() in {"", "none", "off"}:
                config = replace(config, max_iterations=None)
            else:
                try:
                    config = replace(config, max_iterations=int(raw_max))
                except ValueError as exc:
                    raise SchemaError(
                        f"{_MAX_ITERATIONS_ENV} must be an integer: {raw_max}"
                    ) from exc
        store_dir = os.environ.get(_STORE_DIR_ENV)
        if store_dir:
            config = replace(config, store_dir=store_dir)
        log_level = os.environ.get(_LOG_LEVEL_ENV)
        if log_level:
            config = replace(config, log_level=log_level)
        return config

    def resolve_store_dir(self) -> Path:
        if self.store_dir:
            return Path(self.store_dir).expanduser()
        return Path(tempfile.gettempdir()) / "tickflow" / "durable"


def configure_logging(config: Optional[EngineConfig] = None) -> logging.Logger:
    """Apply the configured level to the package logger and return it."""

    config = config or EngineConfig.from_env()
    logger = logging.getLogger("tickflow")
    logger.setLevel(config.log_level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s", datefmt="%H:%M:%S")
        )
        logger.addHandler(handler)
    return logger
