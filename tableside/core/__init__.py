"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from tableside.core.config import get_settings, Settings, EnvironmentMode
from tableside.core.errors import (
    TablesideError,
    ValidationError,
    Unauthorized,
    NotFound,
    InvalidTransition,
    TransientIO,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "TablesideError",
    "ValidationError",
    "Unauthorized",
    "NotFound",
    "InvalidTransition",
    "TransientIO",
]
