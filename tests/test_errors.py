"""Tests for the error types and the global error handler."""

import logging

import pytest
from starlette.routing import Route
from starlette.applications import Starlette
from starlette.testclient import TestClient

from mcfaas.errors import AppError, DeploymentNotFound, InstallFailure, SpawnFailure
from mcfaas.web import errors as web_errors
from mcfaas.web.errors import global_error_handler


class TestAppError:

    @pytest.mark.parametrize("status_code, status", [(400, "fail"), (404, "fail"), (500, "error"), (504, "error")])
    def test_status_class(self, status_code, status):
        error = AppError("boom", status_code)
        assert error.status == status
        assert error.to_dict() == {"status": status, "message": "boom"}

    def test_subclasses(self):
        assert DeploymentNotFound("x").status_code == 400
        assert DeploymentNotFound("x").message == "Invalid deployment id: x"
        assert SpawnFailure("x").status_code == 500
        assert InstallFailure("x").status_code == 500
        assert InstallFailure("x", status_code=504, output="log").output == "log"


async def _raise_app_error(request):
    raise AppError("Nope", 403)


async def _raise_runtime_error(request):
    raise RuntimeError("kaboom")


@pytest.fixture
def client():
    app = Starlette(
        routes=[Route("/app-error", _raise_app_error), Route("/crash", _raise_runtime_error)],
        exception_handlers={AppError: global_error_handler, Exception: global_error_handler},
    )
    return TestClient(app, raise_server_exceptions=False)


class TestGlobalErrorHandler:

    def test_app_error(self, client):
        response = client.get("/app-error")
        assert response.status_code == 403
        assert response.json() == {"status": "fail", "message": "Nope"}

    def test_unexpected_error(self, client):
        response = client.get("/crash")
        assert response.status_code == 500
        assert response.json() == {"status": "error", "message": "Internal server error"}

    def test_stack_trace_logged_outside_production(self, client, caplog, monkeypatch):
        monkeypatch.setattr(web_errors.config, "APP_ENV", "development")
        with caplog.at_level(logging.ERROR, logger="mcfaas.web.errors"):
            client.get("/crash")
        record = next(r for r in caplog.records if r.name == "mcfaas.web.errors")
        assert record.getMessage().startswith("Status Code: 500")
        assert record.exc_info is not None

    def test_no_stack_trace_in_production(self, client, caplog, monkeypatch):
        monkeypatch.setattr(web_errors.config, "APP_ENV", "production")
        with caplog.at_level(logging.ERROR, logger="mcfaas.web.errors"):
            client.get("/crash")
        record = next(r for r in caplog.records if r.name == "mcfaas.web.errors")
        assert not record.exc_info
