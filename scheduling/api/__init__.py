"""
API Module Initialization

Exports the scheduling router and error handler registration.
"""

from scheduling.api.errors import register_error_handlers
from scheduling.api.routes import router

__all__ = [
    "router",
    "register_error_handlers",
]
