"""
This module contains the configuration settings for the MCFaaS control plane.
It defines paths, worker runtime settings, timeouts and logging configuration.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import sys
import socket
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
BIN_DIR = BASE_DIR / "bin"
LOGS_DIR = BASE_DIR / "logs"

#* --- Application File Paths ---
DEPLOYMENTS_FILE = pathlib.Path(os.getenv("DEPLOYMENTS_FILE", str(BASE_DIR / "deployments.yaml")))
LOG_DB_PATH = LOGS_DIR / "app_logs.db"
OVERRIDES_JSON_PATH = BIN_DIR / "overrides.json"

#* --- Runtime Posture ---
# Anything other than 'production' logs full stack traces for request errors.
APP_ENV = os.getenv("APP_ENV", "development").lower()
# Reported as 'prefix' in deploy responses.
HOST_IDENTIFIER = os.getenv("HOST_IDENTIFIER", "") or socket.gethostname()

#* --- Worker Runtime ---
# Launcher prefix for worker processes. The module and the IPC descriptor
# arguments are appended by the supervisor.
PYTHON_EXECUTABLE = os.getenv("PYTHON_EXECUTABLE", sys.executable)
WORKER_COMMAND = os.getenv("WORKER_COMMAND", "")
WORKER_MODULE = "mcfaas.worker"
WORKER_READY_TIMEOUT_SECONDS = float(os.getenv("WORKER_READY_TIMEOUT_SECONDS", "60"))
GRACEFUL_SHUTDOWN_TIMEOUT = 10  # seconds before force-killing

#* --- Dependency Installation ---
INSTALL_DEPENDENCIES = os.getenv("INSTALL_DEPENDENCIES", "True").lower() in ('true', '1', 't')
INSTALL_TIMEOUT_SECONDS = 600
NPM_EXECUTABLE = os.getenv("NPM_EXECUTABLE", "npm")

#* --- Web Server Settings ---
# Hypercorn must run a single worker: the registries live in process memory.
WEB_SERVER_HOST = os.getenv("WEB_SERVER_HOST", "127.0.0.1")
WEB_SERVER_PORT = int(os.getenv("WEB_SERVER_PORT", "9000"))

#* --- Optional Services ---
# Grafana Loki (for observability)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
LOG_TO_DB = os.getenv("LOG_TO_DB", "True").lower() in ('true', '1', 't')

#* --- MODIFIABLE SETTINGS (Changeable at runtime via overrides.json) ---
MODIFIABLE_SETTINGS = {
    # Workers
    "WORKER_READY_TIMEOUT_SECONDS", "GRACEFUL_SHUTDOWN_TIMEOUT",
    # Dependencies
    "INSTALL_DEPENDENCIES", "INSTALL_TIMEOUT_SECONDS",
    # Logging
    "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL",
    "MAX_LOG_DB_SIZE_MB", "LOG_DB_SIZE_CHECK_INTERVAL_SECONDS",
}

#* --- Default Values for Modifiable Settings ---
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
MAX_LOG_DB_SIZE_MB = 100
LOG_DB_SIZE_CHECK_INTERVAL_SECONDS = 12 * 3600 # 12 hours
