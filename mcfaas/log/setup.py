import sys
import logging

from mcfaas.local.config import effective_settings as config
from mcfaas.log.handler import SQLiteHandler, LokiHandler


class MainFormatter(logging.Formatter):
    """
    Formats control plane records with timestamp, level and logger name.
    Worker output lines (`proc.<deployment_id>` loggers) are prefixed with
    the worker pid and deployment id instead.
    """

    def __init__(self):
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        if record.name.startswith('proc.'):
            pid = getattr(record, 'pid', '?')
            deployment_id = getattr(record, 'deployment_id', record.name.split('.', 1)[-1])
            return f"[{pid}:{deployment_id}] {record.getMessage()}"
        return super().format(record)


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for the control plane.
    Sets up the console handler and, depending on settings, the SQLite and
    Loki handlers. Previously configured handlers are closed and removed so
    repeated calls do not duplicate output.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    #* --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    #* --- SQLite Handler ---
    if config.LOG_TO_DB:
        try:
            config.LOG_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
            sqlite_handler = SQLiteHandler(db_path=config.LOG_DB_PATH)
            sqlite_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(sqlite_handler)
        except Exception as e:
            root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")

    #* --- Loki Handler (conditional) ---
    if config.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(url=config.LOKI_URL, org_id=config.LOKI_ORG_ID)
            loki_handler.setLevel(logging.INFO)
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
