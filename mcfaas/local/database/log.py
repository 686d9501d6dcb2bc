import time
import sqlite3
import logging
from pathlib import Path
from collections import namedtuple
from typing import List, Dict, Any, Optional

from mcfaas.local.database.base import BaseDBManager

LogEntry = namedtuple('LogEntry', ['timestamp', 'level', 'logger', 'pid', 'deployment_id', 'message'])
log = logging.getLogger(__name__)

_COLUMNS = ("timestamp", "level", "logger", "module", "funcName", "lineno", "pid", "deployment_id", "message")


class LogDBManager(BaseDBManager):
    """
    Manages the control plane's logging SQLite database.
    """

    def __init__(self, db_path: Path):
        super().__init__(db_path, enable_wal=False)

    def initialize_database(self) -> None:
        """Ensures the logs table and its deployment index exist."""
        try:
            self.execute('''
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL,
                    level TEXT,
                    logger TEXT,
                    module TEXT,
                    funcName TEXT,
                    lineno INTEGER,
                    pid INTEGER,
                    deployment_id TEXT,
                    message TEXT
                )
            ''')
            self.execute("CREATE INDEX IF NOT EXISTS idx_logs_deployment ON logs (deployment_id, timestamp)")
            log.debug("Log database tables created/verified.")
        except sqlite3.Error as e:
            log.critical(f"Could not create log database tables: {e}", exc_info=True)
            raise

    def insert_log_batch(self, log_entries: List[Dict[str, Any]]) -> None:
        """
        Inserts multiple log entries in a single transaction.

        :param log_entries: Dicts keyed by the logs table columns
                            (timestamp, level, logger, module, funcName, lineno, pid, deployment_id, message).
        """
        if not log_entries:
            return

        params = [tuple(entry.get(column) for column in _COLUMNS) for entry in log_entries]
        placeholders = ", ".join("?" for _ in _COLUMNS)
        try:
            self.execute_many(
                f"INSERT INTO logs ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                params
            )
        except sqlite3.Error as e:
            log.error(f"Failed to insert log batch of {len(log_entries)} entries: {e}", exc_info=True)
            raise

    def fetch_last_entries(self, limit: int, deployment_id: Optional[str] = None) -> List[LogEntry]:
        """
        Fetches the most recent log entries, oldest first.

        :param limit: The maximum number of entries to retrieve.
        :param deployment_id: Restricts the result to output of one deployment's workers.
        :return: A list of LogEntry namedtuples with a formatted message.
        """
        sql = "SELECT timestamp, level, logger, pid, deployment_id, message FROM logs"
        params: tuple = ()
        if deployment_id is not None:
            sql += " WHERE deployment_id = ?"
            params = (str(deployment_id),)
        sql += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params += (limit,)

        entries = []
        try:
            for row in reversed(self.fetch_all(sql, params)):
                dt = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(row['timestamp']))
                entries.append(LogEntry(
                    timestamp=row['timestamp'], level=row['level'], logger=row['logger'],
                    pid=row['pid'], deployment_id=row['deployment_id'],
                    message=f"{dt} - {row['level']:<8} - [{row['logger']}] - {row['message']}"
                ))
        except sqlite3.Error as e:
            log.error(f"Failed to fetch log entries from database: {e}")
        return entries
