"""
Core module initialization.
Exports configuration, logging utilities and domain errors.
"""

from bill_generator.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from bill_generator.core.exceptions import (
    BillGeneratorError,
    ValidationError,
    Unauthorized,
    SubscriptionExpired,
    NotFound,
    Conflict,
    InternalError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "BillGeneratorError",
    "ValidationError",
    "Unauthorized",
    "SubscriptionExpired",
    "NotFound",
    "Conflict",
    "InternalError",
]
