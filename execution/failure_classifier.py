"""execution/failure_classifier.py

Maps a structured simulation failure onto a resource shortage.

Only three failure identifiers are correctable:
  tx_net_usage_exceeded  -> NET shortage (bytes, measured usage)
  tx_cpu_usage_exceeded  -> CPU shortage (microseconds, billed time)
  ram_usage_exceeded     -> RAM shortage (bytes, needed - available)

Every other failure, or no failure at all, classifies as None. Numbers are
read from structured detail fields, never parsed out of message text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Failure identifiers (grep anchors)
NET_USAGE_EXCEEDED = "tx_net_usage_exceeded"
CPU_USAGE_EXCEEDED = "tx_cpu_usage_exceeded"
RAM_USAGE_EXCEEDED = "ram_usage_exceeded"


class ShortageKind(Enum):
    """Resource dimension a transaction ran out of."""
    NET = "bandwidth_exceeded"
    CPU = "compute_time_exceeded"
    RAM = "storage_exceeded"

    @property
    def label(self) -> str:
        """Short user-facing resource name."""
        return self.name


@dataclass(frozen=True)
class SimulationFailure:
    """Structured failure returned by the simulator.

    Attributes:
        name: Failure identifier (e.g. "ram_usage_exceeded").
        details: Structured numeric fields for the failure.
        code: Numeric error code from the chain, if any.
        message: Human readable message; informational only.
    """
    name: str
    details: Mapping[str, Any] = field(default_factory=dict)
    code: Optional[int] = None
    message: str = ""


@dataclass(frozen=True)
class Shortage:
    """A detected resource deficiency.

    Attributes:
        kind: Which resource is short.
        shortfall: Raw amount missing (bytes for NET/RAM, microseconds for CPU).
        account: Account that is short of RAM (RAM shortages only).
    """
    kind: ShortageKind
    shortfall: int
    account: Optional[str] = None


def classify(failure: Optional[SimulationFailure]) -> Optional[Shortage]:
    """Classify a simulation failure.

    Returns:
        The shortage, or None when there is no failure or it is not a
        correctable resource shortage.
    """
    if failure is None:
        return None

    details = failure.details or {}
    try:
        if failure.name == NET_USAGE_EXCEEDED:
            return Shortage(ShortageKind.NET, int(details["net_usage"]))

        if failure.name == CPU_USAGE_EXCEEDED:
            return Shortage(ShortageKind.CPU, int(details["billed_cpu_us"]))

        if failure.name == RAM_USAGE_EXCEEDED:
            needed = int(details["needed_bytes"])
            available = int(details["available_bytes"])
            return Shortage(
                ShortageKind.RAM,
                needed - available,
                account=details.get("account"),
            )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"[classifier] Malformed {failure.name} details ({e}), not correctable")
        return None

    return None


def _failure_from_error(error: Mapping[str, Any]) -> SimulationFailure:
    details = error.get("details")
    return SimulationFailure(
        name=str(error.get("name", "")),
        details=dict(details) if isinstance(details, Mapping) else {},
        code=error.get("code"),
        message=str(error.get("what", error.get("message", ""))),
    )


def failure_from_response(payload: Mapping[str, Any]) -> Optional[SimulationFailure]:
    """Extract a failure from a compute_transaction response body.

    The failure may be reported at the top level ({"error": {...}}) or as a
    processed exception ({"processed": {"except": {...}}}).
    """
    error = payload.get("error")
    if isinstance(error, Mapping) and error:
        return _failure_from_error(error)

    processed = payload.get("processed")
    if isinstance(processed, Mapping):
        exc = processed.get("except")
        if isinstance(exc, Mapping) and exc:
            return _failure_from_error(exc)

    return None


def failure_to_dict(failure: SimulationFailure) -> Dict[str, Any]:
    """Serialize a failure in the same shape failure_from_response() reads."""
    return {
        "error": {
            "name": failure.name,
            "code": failure.code,
            "what": failure.message,
            "details": dict(failure.details),
        }
    }
