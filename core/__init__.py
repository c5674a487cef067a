"""
Core Infrastructure
====================

Foundational components shared by every other package.

Components:
- exceptions: Unified exception hierarchy
- structured_log: JSON event logging
- log_math: Log-space factorials and binomial coefficients
"""

from .exceptions import (
    OplError,
    ConfigurationError,
    InvalidProblemError,
    NumericalInvariantError,
    PersistenceError,
    is_fatal,
    get_error_code,
)
from .structured_log import jlog, read_recent_logs
from .log_math import LogChoose, log_factorial, log_factorial_table, log_factorial_big_table

__all__ = [
    # Exceptions
    'OplError',
    'ConfigurationError',
    'InvalidProblemError',
    'NumericalInvariantError',
    'PersistenceError',
    'is_fatal',
    'get_error_code',
    # Structured Logging
    'jlog',
    'read_recent_logs',
    # Log-space combinatorics
    'LogChoose',
    'log_factorial',
    'log_factorial_table',
    'log_factorial_big_table',
]
