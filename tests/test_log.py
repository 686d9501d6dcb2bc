"""Tests for log formatting and the SQLite log sink."""

import logging
import pytest

from mcfaas.local.database import LogDBManager
from mcfaas.log import MainFormatter
from mcfaas.log.handler import LokiHandler, SQLiteHandler


def _record(name, msg, level=logging.INFO, **extra):
    record = logging.LogRecord(name, level, __file__, 10, msg, None, None, func="test")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMainFormatter:

    def test_worker_output_is_tagged(self):
        record = _record("proc.demo", "hello", pid=42, deployment_id="demo", stream="stdout")
        assert MainFormatter().format(record) == "[42:demo] hello"

    def test_regular_records(self):
        formatted = MainFormatter().format(_record("mcfaas.web.dispatch", "dispatched", level=logging.WARNING))
        assert " - WARNING  - [mcfaas.web.dispatch] - dispatched" in formatted


class TestLogDatabase:

    def test_batch_insert_and_fetch(self, tmp_path):
        db = LogDBManager(tmp_path / "logs.db")
        db.initialize_database()
        db.insert_log_batch([
            {"timestamp": 1.0, "level": "INFO", "logger": "proc.demo", "module": "worker",
             "funcName": "stdout", "lineno": 0, "pid": 42, "deployment_id": "demo", "message": "hello"},
            {"timestamp": 2.0, "level": "ERROR", "logger": "mcfaas", "module": "x",
             "funcName": "f", "lineno": 1, "pid": 1, "deployment_id": None, "message": "boom"},
        ])
        entries = db.fetch_last_entries(10)
        assert [e.pid for e in entries] == [42, 1]
        only_demo = db.fetch_last_entries(10, deployment_id="demo")
        assert len(only_demo) == 1
        assert only_demo[0].message.endswith("[proc.demo] - hello")


class TestSQLiteHandler:

    def test_worker_records_keep_pid_and_deployment(self, tmp_path):
        handler = SQLiteHandler(db_path=tmp_path / "logs.db")
        try:
            handler.emit(_record("proc.demo", "from worker", pid=42, deployment_id="demo", stream="stderr"))
            handler.emit(_record("mcfaas.local", "from control plane"))
            handler.flush()
            entries = handler.logDB.fetch_last_entries(10)
        finally:
            handler.close()
        assert [(e.pid, e.deployment_id) for e in entries][0] == (42, "demo")
        assert entries[1].deployment_id is None

    def test_entry_columns(self):
        entry = SQLiteHandler.to_entry(_record("proc.demo", "line", pid=7, deployment_id="demo", stream="stderr"))
        assert entry["module"] == "worker"
        assert entry["funcName"] == "stderr"
        assert entry["pid"] == 7


class TestLokiHandler:

    @pytest.fixture
    def handler(self):
        handler = LokiHandler(url="http://loki.invalid:3100/")
        yield handler
        with handler.buffer_lock:
            handler.log_buffer.clear()
        handler.close()

    def test_push_url(self, handler):
        assert handler.url == "http://loki.invalid:3100/loki/api/v1/push"

    def test_worker_labels(self, handler):
        entry = handler.build_entry(_record("proc.demo", "line", pid=7, deployment_id="demo", stream="stdout"))
        assert entry["stream"]["deployment"] == "demo"
        assert entry["stream"]["pid"] == "7"
        assert entry["values"][0][1] == "line"

    def test_push_sends_buffered_entries(self, handler, monkeypatch):
        sent = []

        class Response:
            status_code = 204
            text = ""

        def fake_post(url, json, headers, timeout):
            sent.append((url, json, headers))
            return Response()
        monkeypatch.setattr("mcfaas.log.handler.loki.requests.post", fake_post)

        handler.org_id = "tenant"
        handler.emit(_record("mcfaas.web", "hello"))
        handler.flush()
        assert len(sent) == 1
        url, payload, headers = sent[0]
        assert headers["X-Scope-OrgID"] == "tenant"
        assert payload["streams"][0]["stream"]["logger"] == "mcfaas.web"
