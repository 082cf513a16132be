"""Runtime configuration loaded from ``DOTASK_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Literal

logger = logging.getLogger(__name__)

RootErrorPolicy = Literal["log", "raise"]

_VALID_ROOT_POLICIES: tuple[RootErrorPolicy, ...] = ("log", "raise")

ENV_PREFIX = "DOTASK"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def _env_number(name: str, default: float, cast: type) -> Any:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid %s", name, raw, cast.__name__)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", name, raw)
        return default
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    """Tunables for an :class:`~dotask.executor.Executor`.

    Attributes:
        max_workers: Size of the background worker pool
        idle_wait: Seconds the loop waits on an empty queue before re-checking
        root_errors: What to do with a failed root task: ``"log"`` keeps the
            ``Err`` outcome and logs it, ``"raise"`` also re-raises it out of
            the executor loop
        shutdown_timeout: Seconds to wait for workers when shutting down
        debug: Log every resumption at DEBUG level
    """

    max_workers: int = 8
    idle_wait: float = 0.05
    root_errors: RootErrorPolicy = "log"
    shutdown_timeout: float = 5.0
    debug: bool = False

    def __post_init__(self) -> None:
        if self.root_errors not in _VALID_ROOT_POLICIES:
            raise ValueError(
                f"root_errors must be one of 'log' or 'raise', got {self.root_errors!r}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.idle_wait <= 0:
            raise ValueError(f"idle_wait must be positive, got {self.idle_wait}")

    @classmethod
    def from_env(cls) -> RuntimeConfig:
        defaults = cls()
        root_errors = os.environ.get(f"{ENV_PREFIX}_ROOT_ERRORS", defaults.root_errors).lower()
        if root_errors not in _VALID_ROOT_POLICIES:
            logger.warning(
                "Ignoring %s_ROOT_ERRORS=%r: expected 'log' or 'raise'", ENV_PREFIX, root_errors
            )
            root_errors = defaults.root_errors
        return cls(
            max_workers=_env_number(f"{ENV_PREFIX}_MAX_WORKERS", defaults.max_workers, int),
            idle_wait=_env_number(f"{ENV_PREFIX}_IDLE_WAIT", defaults.idle_wait, float),
            root_errors=root_errors,  # type: ignore[arg-type]
            shutdown_timeout=_env_number(
                f"{ENV_PREFIX}_SHUTDOWN_TIMEOUT", defaults.shutdown_timeout, float
            ),
            debug=_env_flag(f"{ENV_PREFIX}_DEBUG"),
        )

    def with_overrides(self, **overrides: Any) -> RuntimeConfig:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return replace(self, **changes)


__all__ = ["RootErrorPolicy", "RuntimeConfig"]
