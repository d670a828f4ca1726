"""
Utility modules.
"""

from .logger import get_logger, setup_logger, SimLogger
from .helpers import clamp, is_finite_positive, safe_div, safe_float

__all__ = [
    # Logger
    "get_logger",
    "setup_logger",
    "SimLogger",
    # Numeric guards
    "clamp",
    "is_finite_positive",
    "safe_div",
    "safe_float",
]
