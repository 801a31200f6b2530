"""Engine configuration.

Defaults applied to graphs that do not set them explicitly. Explicit
constructor arguments always win over the config.

Environment Variables:
    SYNAPTIC_MAX_STEPS: Default step guard for every run (positive integer).
    SYNAPTIC_STRICT_TRANSITIONS: Reject duplicate transitions ("1", "true",
        "yes", "on").
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

MAX_STEPS_ENV = "SYNAPTIC_MAX_STEPS"
STRICT_TRANSITIONS_ENV = "SYNAPTIC_STRICT_TRANSITIONS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide defaults.

    Attributes:
        max_steps: Maximum node invocations per run (None = unbounded).
        strict_transitions: Raise on duplicate (source, action) pairs instead
            of letting the last write win.
    """

    max_steps: int | None = None
    strict_transitions: bool = False

    def __post_init__(self) -> None:
        if self.max_steps is not None and self.max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {self.max_steps}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineConfig:
        """Build a config from SYNAPTIC_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ.

        Raises:
            ValueError: If a variable holds an unparseable value.
        """
        env = os.environ if environ is None else environ

        max_steps: int | None = None
        raw_steps = env.get(MAX_STEPS_ENV, "").strip()
        if raw_steps:
            try:
                max_steps = int(raw_steps)
            except ValueError:
                raise ValueError(f"{MAX_STEPS_ENV} must be an integer, got {raw_steps!r}") from None

        raw_strict = env.get(STRICT_TRANSITIONS_ENV, "").strip().lower()
        if raw_strict in _TRUE_VALUES:
            strict = True
        elif raw_strict in _FALSE_VALUES:
            strict = False
        else:
            raise ValueError(f"{STRICT_TRANSITIONS_ENV} must be a boolean, got {raw_strict!r}")

        return cls(max_steps=max_steps, strict_transitions=strict)
