"""execution/errors.py

Exceptions and settle reasons for the auto-correction pipeline.

Settle reasons are plain string constants so log lines and callers agree on
the same spelling.
"""

from typing import Any, Optional

# Settle reasons (grep anchors)
SETTLED_CLEAN = "settled_clean"
SETTLED_UNSUPPORTED = "settled_unsupported"
SETTLED_NO_PROFILE = "settled_no_profile"
SETTLED_UNKNOWN_FAILURE = "settled_unknown_failure"


class AutoCorrectError(Exception):
    """Base exception for auto-correction errors."""
    pass


class TooManyIterationsError(AutoCorrectError):
    """Raised when the correction loop exceeds its iteration bound."""

    def __init__(self, iterations: int, max_iterations: int):
        self.iterations = iterations
        self.max_iterations = max_iterations
        super().__init__(
            f"Too many correction iterations ({iterations} > {max_iterations}). "
            "Please report this bug if you see it."
        )


class UIRequiredError(AutoCorrectError):
    """Raised when the plugin is registered on a context without a prompt surface."""
    pass


class PromptCancelled(AutoCorrectError):
    """Raised by a prompt surface when the user cancels a prompt."""
    pass


class UnhandledSimulationFailure(AutoCorrectError):
    """Raised for unclassified simulation failures under the "raise" policy."""

    def __init__(self, failure: Any):
        self.failure = failure
        super().__init__(f"Unhandled simulation failure: {getattr(failure, 'name', failure)}")


class ChainClientError(AutoCorrectError):
    """Raised when the chain API cannot be reached or returns garbage."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)
