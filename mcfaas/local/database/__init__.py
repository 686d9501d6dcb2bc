"""
SQLite persistence for the control plane's own logs.
"""

from .log import LogDBManager, LogEntry

__all__ = ["LogDBManager", "LogEntry"]
