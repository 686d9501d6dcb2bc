import sys
import logging
import threading
from collections import deque
from typing import Deque, Dict, Any, Optional

import requests

from mcfaas.local.config import effective_settings as config


class LokiHandler(logging.Handler):
    """
    Ships log records to a Grafana Loki instance in batches from a
    background thread. Worker output carries `deployment` and `pid` labels.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, batch_size: int = 200):
        """
        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param batch_size: Buffered entry count that triggers an immediate push.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.hostname = config.HOST_IDENTIFIER
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.flush_interval = config.LOG_BUFFER_FLUSH_INTERVAL
        self.batch_size = batch_size

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        """
        Converts a record into a Loki stream entry.

        :param record: The log record to convert.
        :return: A dict with 'stream' labels and a single [ns_timestamp, line] value.
        """
        labels = {
            "job": "mcfaas",
            "level": record.levelname.lower(),
            "hostname": self.hostname,
        }
        if record.name.startswith('proc.'):
            msg = record.getMessage()
            labels["logger"] = "worker"
            labels["deployment"] = str(getattr(record, 'deployment_id', record.name.split('.', 1)[-1]))
            labels["stream"] = str(getattr(record, 'stream', 'stdout'))
            pid = getattr(record, 'pid', None)
            if pid is not None:
                labels["pid"] = str(pid)
        else:
            msg = self.format(record)
            labels["logger"] = record.name
        return {"stream": labels, "values": [[str(int(record.created * 1e9)), msg]]}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.build_entry(record)
            with self.buffer_lock:
                self.log_buffer.append(entry)
                if len(self.log_buffer) >= self.batch_size:
                    self._flush_locked()
        except Exception:
            self.handleError(record)

    def _flush_locked(self) -> None:
        """
        Pushes the buffered entries to Loki. Assumes the buffer lock is held;
        the lock is released around the HTTP call.
        """
        if not self.log_buffer:
            return

        logs_to_send = list(self.log_buffer)
        self.log_buffer.clear()

        self.buffer_lock.release()
        try:
            headers = {'Content-Type': 'application/json'}
            if self.org_id:
                headers['X-Scope-OrgID'] = self.org_id
            response = requests.post(self.url, json={"streams": logs_to_send}, headers=headers, timeout=5)
            # Loki answers a successful push with 204 No Content
            if response.status_code != 204:
                print(f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}", file=sys.stderr)
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(logs_to_send)} logs to Loki: {e}", file=sys.stderr)
        finally:
            self.buffer_lock.acquire()

    def flush(self) -> None:
        with self.buffer_lock:
            self._flush_locked()

    def close(self) -> None:
        """Stops the flush thread after a final push."""
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
