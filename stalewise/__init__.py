"""
stalewise — caching for expensive, flaky remote calls.

    from stalewise import cache as C   # Coordination layer
    from stalewise.contrib import govee  # Vendor client built on it
"""

from stalewise import cache
from stalewise._config import CacheSettings
from stalewise._logging import configure_logging, get_logger
from stalewise._types import (
    Lazy,
    Compute,
)

__version__ = "0.1.0"

__all__ = (
    "cache",
    "CacheSettings",
    "configure_logging",
    "get_logger",
    "Lazy",
    "Compute",
)
