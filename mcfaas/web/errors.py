import logging

from starlette.requests import Request
from starlette.responses import JSONResponse

from mcfaas.errors import AppError
from mcfaas.local.config import effective_settings as config

log = logging.getLogger(__name__)


def is_production() -> bool:
    return config.APP_ENV == "production"


async def global_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Renders every error raised by a route as JSON.

    `AppError`s keep their status code and class; anything else becomes a
    500. Stack traces are logged only outside production.
    """
    if isinstance(exc, AppError):
        status_code, body = exc.status_code, exc.to_dict()
    else:
        status_code, body = 500, {"status": "error", "message": "Internal server error"}

    log.error(
        f"Status Code: {status_code} - {request.method} {request.url.path} - {exc}",
        exc_info=exc if not is_production() else None,
    )
    return JSONResponse(body, status_code=status_code)
