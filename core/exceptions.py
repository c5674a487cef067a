"""
Unified Exception Hierarchy for the (1+lambda) DP system.

All exceptions inherit from OplError, enabling consistent error handling
across the transition finders, the DP engines, the optimizer and the
persistence layer.

Usage:
    from core.exceptions import OplError, InvalidProblemError, NumericalInvariantError

    try:
        result = DiscreteStrengthEngine(n, lam).build()
    except InvalidProblemError as e:
        # Bad n / lambda / population size, nothing was built
        report(e.error_code, e.context)
    except NumericalInvariantError:
        # A probability vector lost its normalization; results would be wrong
        raise
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class OplError(Exception):
    """
    Base exception for all errors raised by this system.

    Attributes:
        error_code: Unique identifier for this error type
        is_recoverable: Whether the caller may retry with different input
        context: Additional context about the error
        timestamp: When the error occurred
    """
    error_code: str = "OPL_ERROR"
    is_recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def __str__(self) -> str:
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "is_recoverable": self.is_recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(OplError):
    """
    Base class for configuration-related errors.
    """
    error_code = "CONFIG_ERROR"


class InvalidProblemError(ConfigurationError):
    """
    Raised when a problem instance or query is out of range.

    Examples:
    - Non-positive problem size or offspring count
    - Optimizer population size whose parent count would be zero
    - Distance or strength outside [0, n]
    """
    error_code = "INVALID_PROBLEM"


class SettingsValidationError(ConfigurationError):
    """
    Raised when settings fail schema validation.

    Uses Pydantic validation under the hood.
    """
    error_code = "SETTINGS_INVALID"


class MissingConfigError(ConfigurationError):
    """
    Raised when required configuration is missing.
    """
    error_code = "CONFIG_MISSING"


# =============================================================================
# NUMERICAL ERRORS
# =============================================================================

class NumericalError(OplError):
    """
    Base class for numerical errors.
    """
    error_code = "NUMERICAL_ERROR"


class NumericalInvariantError(NumericalError):
    """
    Raised when a probability vector does not sum to one within tolerance.

    This is NON-RECOVERABLE: every expectation computed downstream of the
    offending vector would be silently wrong.
    """
    error_code = "NUMERICAL_INVARIANT"
    is_recoverable = False


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================

class PersistenceError(OplError):
    """
    Base class for table storage errors.
    """
    error_code = "PERSISTENCE_ERROR"


class TableFormatError(PersistenceError):
    """
    Raised when a stored table stream cannot be parsed.
    """
    error_code = "TABLE_FORMAT"


class TableMismatchError(PersistenceError):
    """
    Raised when a stored table belongs to a different (n, lambda) pair.
    """
    error_code = "TABLE_MISMATCH"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_fatal(error: Exception) -> bool:
    """
    Check if an error must abort the current computation.

    Args:
        error: The exception to check

    Returns:
        True if the error is non-recoverable
    """
    if isinstance(error, OplError):
        return not error.is_recoverable
    return False


def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Args:
        error: The exception to get the code for

    Returns:
        Error code string, or "UNKNOWN" for foreign exceptions
    """
    if isinstance(error, OplError):
        return error.error_code
    return "UNKNOWN"
