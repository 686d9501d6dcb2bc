import sqlite3
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any, Optional

from mcfaas.local.config import effective_settings as config
from mcfaas.local.database import LogDBManager


class SQLiteHandler(logging.Handler):
    """
    A logging handler that writes records to a SQLite database in batches
    using a background thread. Worker output keeps its pid, deployment id
    and stream in dedicated columns.
    """
    def __init__(self, db_path: Path):
        """
        :param db_path: The path to the SQLite database file.
        """
        super().__init__()
        self.db_path = db_path
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()
        self.flush_interval = config.LOG_BUFFER_FLUSH_INTERVAL
        self.buffer_size = config.LOG_BUFFER_SIZE
        self.db_size_check_interval = config.LOG_DB_SIZE_CHECK_INTERVAL_SECONDS
        self.max_db_size_mb = config.MAX_LOG_DB_SIZE_MB
        self.stop_event = threading.Event()
        self.logDB = LogDBManager(self.db_path)
        self.logDB.initialize_database()

        self.flush_thread: Optional[threading.Thread] = threading.Thread(
            target=self._periodic_flush, daemon=True, name="SQLiteFlushThread"
        )
        self.flush_thread.start()
        self.db_size_check_thread: Optional[threading.Thread] = threading.Thread(
            target=self._periodic_db_size_check, daemon=True, name="LogDbSizeCheckThread"
        )
        self.db_size_check_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()

    @staticmethod
    def to_entry(record: logging.LogRecord) -> Dict[str, Any]:
        """
        Maps a record onto a row of the logs table.

        :param record: The log record to convert.
        :return: A dict keyed by column name.
        """
        if record.name.startswith('proc.'):
            module = "worker"
            func_name = getattr(record, 'stream', 'stdout')
            lineno = 0
        else:
            module = record.module
            func_name = record.funcName
            lineno = record.lineno
        deployment_id = getattr(record, 'deployment_id', None)
        return {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "module": module,
            "funcName": func_name,
            "lineno": lineno,
            "pid": getattr(record, 'pid', record.process),
            "deployment_id": None if deployment_id is None else str(deployment_id),
            "message": record.getMessage(),
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.to_entry(record)
        except Exception:
            self.handleError(record)
            return
        with self.buffer_lock:
            self.log_buffer.append(entry)
            if len(self.log_buffer) >= self.buffer_size:
                self._flush_locked()

    def _flush_locked(self) -> None:
        """
        Writes the buffered entries through LogDBManager. Assumes the buffer
        lock is held; the lock is released around the database write.
        """
        if not self.log_buffer:
            return

        entries_to_write = list(self.log_buffer)
        self.log_buffer.clear()

        self.buffer_lock.release()
        try:
            self.logDB.insert_log_batch(entries_to_write)
        except sqlite3.Error as e:
            print(f"Error writing logs to DB: {e}. Log entries: {len(entries_to_write)}")
        finally:
            self.buffer_lock.acquire()

    def flush(self) -> None:
        with self.buffer_lock:
            self._flush_locked()

    def _check_db_file_size(self) -> None:
        """Logs a warning when the log database outgrows its configured limit."""
        logger = logging.getLogger(__name__)
        try:
            if not self.db_path.exists():
                return
            file_size_mb = self.db_path.stat().st_size / (1024 * 1024)
            if file_size_mb > self.max_db_size_mb:
                logger.warning(
                    f"Log database file '{self.db_path}' size ({file_size_mb:.2f} MB) "
                    f"exceeds configured limit ({self.max_db_size_mb} MB)."
                )
        except OSError as e:
            logger.error(f"Error checking log database file size for '{self.db_path}': {e}")

    def _periodic_db_size_check(self) -> None:
        while not self.stop_event.wait(self.db_size_check_interval):
            self._check_db_file_size()

    def close(self) -> None:
        """Stops the background threads and writes out whatever is still buffered."""
        self.stop_event.set()
        if self.flush_thread and self.flush_thread.is_alive():
            self.flush_thread.join()
        if self.db_size_check_thread and self.db_size_check_thread.is_alive():
            self.db_size_check_thread.join()
        self.flush()
        super().close()
