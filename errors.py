from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()


class MarketplaceError(Exception):
    """Base typed error.

    `code` is a stable dot-separated identifier for clients, `message` is
    the human readable text returned as `detail`.
    """

    status_code = 500
    code = "internal.error"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = int(status_code)

    def to_public_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(MarketplaceError):
    status_code = 400
    code = "request.invalid"


class UnauthorizedError(MarketplaceError):
    status_code = 401
    code = "auth.unauthorized"


class ForbiddenError(MarketplaceError):
    status_code = 403
    code = "auth.forbidden"


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "resource.not_found"


class ConflictError(MarketplaceError):
    status_code = 409
    code = "resource.conflict"


class ServiceUnavailableError(MarketplaceError):
    status_code = 503
    code = "database.unavailable"


def register_exception_handlers(app: FastAPI) -> None:
    """Render marketplace errors as `{"detail", "code"}` JSON."""

    @app.exception_handler(MarketplaceError)
    async def _marketplace_error_handler(request: Request, exc: MarketplaceError) -> Response:
        logger.info(
            "request_failed",
            path=request.url.path,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException) -> Response:
        payload = {"detail": exc.detail, "code": f"http.{exc.status_code}"}
        return JSONResponse(status_code=int(exc.status_code), content=payload, headers=dict(exc.headers or {}))

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        payload = {"detail": exc.errors(), "code": "http.validation_error"}
        return JSONResponse(status_code=422, content=jsonable_encoder(payload))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
        payload = {"detail": "Internal Server Error", "code": "internal.unhandled"}
        return JSONResponse(status_code=500, content=payload)
