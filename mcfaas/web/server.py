import asyncio
import logging
import contextlib
from json import JSONDecodeError
from typing import AsyncIterator

from starlette.routing import Route
from starlette.requests import Request
from starlette.applications import Starlette
from starlette.responses import JSONResponse

from mcfaas.errors import AppError
from mcfaas.web.dispatch import DispatchCoordinator
from mcfaas.web.errors import global_error_handler

log = logging.getLogger("asgi_server")


async def _read_json(request: Request):
    try:
        return await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        raise AppError("Request body must be valid JSON.", 400)


# --- Route Handlers ---
async def validate(request: Request) -> JSONResponse:
    """Reports that deployments are accepted."""
    return JSONResponse({"status": "success", "data": True})


async def readiness(request: Request) -> JSONResponse:
    return JSONResponse({"status": "success"})


async def deploy(request: Request) -> JSONResponse:
    """Dispatches a deployment to a new worker."""
    coordinator: DispatchCoordinator = request.app.state.coordinator
    body = await _read_json(request)
    log.debug(f"Deploy request from {request.client.host if request.client else 'unknown'}: {body}")
    result = await coordinator.handle_deploy_request(body)
    return JSONResponse(result.to_dict())


async def inspect(request: Request) -> JSONResponse:
    coordinator: DispatchCoordinator = request.app.state.coordinator
    return JSONResponse(coordinator.inspect())


async def delete(request: Request) -> JSONResponse:
    """Stops the workers of a deployment (body: {'suffix': <deployment id>})."""
    coordinator: DispatchCoordinator = request.app.state.coordinator
    body = await _read_json(request)
    if not isinstance(body, dict):
        raise AppError("Request body must be a JSON object.", 400)
    if body.get("suffix") is None:
        raise AppError("Request body requires a 'suffix'.", 400)
    removed = await coordinator.undeploy(body["suffix"])
    return JSONResponse({"status": "success", "data": sorted(removed)})


# --- Application Instance Creation ---
routes = [
    Route("/validate", endpoint=validate, methods=["GET"]),
    Route("/readiness", endpoint=readiness, methods=["GET"]),
    Route("/deploy", endpoint=deploy, methods=["POST"]),
    Route("/inspect", endpoint=inspect, methods=["GET"]),
    Route("/delete", endpoint=delete, methods=["POST"]),
]


@contextlib.asynccontextmanager
async def _lifespan(app: Starlette) -> AsyncIterator[None]:
    yield
    coordinator: DispatchCoordinator = app.state.coordinator
    await asyncio.get_running_loop().run_in_executor(None, coordinator.supervisor.stop_all)


def build_app(coordinator: DispatchCoordinator, debug: bool = False) -> Starlette:
    """
    Creates the ASGI application around a coordinator.

    Workers are stopped when the application shuts down.
    """
    app = Starlette(
        debug=debug,
        routes=routes,
        exception_handlers={AppError: global_error_handler, Exception: global_error_handler},
        lifespan=_lifespan,
    )
    app.state.coordinator = coordinator
    return app
