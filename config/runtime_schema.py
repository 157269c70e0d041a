"""config/runtime_schema.py

Defines the configuration schema for the auto-correction loop.
Implements manual validation to avoid Pydantic dependency.
"""

from dataclasses import dataclass
from typing import Any, Optional

UNKNOWN_FAILURE_IGNORE = "ignore"
UNKNOWN_FAILURE_RAISE = "raise"


@dataclass(frozen=True)
class AutoCorrectConfig:
    """
    Tunables for resource correction.
    Defaults match what the plugin ships with on public chains.
    """
    # Multiply all resource purchases to absorb inaccurate estimates
    resource_multiplier: float = 1.5

    # Circuit breaker against a misbehaving simulator
    max_iterations: int = 3

    # Powerup floors to avoid API speed variance
    min_cpu_us: int = 2500
    min_net_bytes: int = 10000

    # RAM a powerup itself consumes (405 exact, plus a small buffer)
    powerup_ram_bytes: int = 410
    powerup_days: int = 1

    # What to do with simulation failures that are not resource shortages
    unknown_failure_policy: str = UNKNOWN_FAILURE_IGNORE

    def __post_init__(self):
        """Validate constraints manually since we don't have Pydantic."""
        self._validate_range("resource_multiplier", self.resource_multiplier, 1.0, 5.0)
        self._validate_range("max_iterations", self.max_iterations, 1, 10)
        self._validate_range("min_cpu_us", self.min_cpu_us, 0, None)
        self._validate_range("min_net_bytes", self.min_net_bytes, 0, None)
        self._validate_range("powerup_ram_bytes", self.powerup_ram_bytes, 0, 65536)
        self._validate_range("powerup_days", self.powerup_days, 1, 30)

        if self.unknown_failure_policy not in (UNKNOWN_FAILURE_IGNORE, UNKNOWN_FAILURE_RAISE):
            raise ValueError(
                f"unknown_failure_policy must be '{UNKNOWN_FAILURE_IGNORE}' or "
                f"'{UNKNOWN_FAILURE_RAISE}', got {self.unknown_failure_policy!r}"
            )

    def _validate_range(self, name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
        try:
            val = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be numeric, got {value}")

        if val < min_val:
            raise ValueError(f"{name} {val} is below minimum {min_val}")
        if max_val is not None and val > max_val:
            raise ValueError(f"{name} {val} is above maximum {max_val}")
