"""
Logging handlers for the control plane.
"""

from .loki import LokiHandler
from .sql import SQLiteHandler

__all__ = ["SQLiteHandler", "LokiHandler"]
