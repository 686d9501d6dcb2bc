"""
Logging module for the control plane.
This module sets up console, SQLite and Loki logging, and tags worker output
with the pid and deployment it came from.
"""

from .setup import setup_logging, MainFormatter

__all__ = ["setup_logging", "MainFormatter"]
