"""Domain error taxonomy and its mapping onto HTTP responses.

Services raise these; routes let them propagate and the handlers installed
by ``register_error_handlers`` turn them into ``{"detail", "error"}`` bodies,
the message the frontend shows in its toast.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger("app.errors")


class PosError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str = None, **extra):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.extra = extra


class ValidationError(PosError):
    status_code = 422
    code = "validation_error"


class NotFound(PosError):
    status_code = 404
    code = "not_found"


class InsufficientStock(PosError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, item_id: str, current: int, requested: int, name: str = None):
        label = name or item_id
        super().__init__(
            f"Estoque insuficiente para {label}: disponível {current}, solicitado {requested}",
            item_id=item_id,
            current=current,
            requested=requested,
        )
        self.item_id = item_id
        self.current = current
        self.requested = requested


class ConflictError(PosError):
    status_code = 409
    code = "conflict"


class ConcurrentUpdate(ConflictError):
    code = "concurrent_update"


class PermissionDenied(PosError):
    status_code = 403
    code = "permission_denied"


class BackendUnavailable(PosError):
    status_code = 503
    code = "backend_unavailable"


def _body(exc: PosError) -> dict:
    body = {"detail": exc.message, "error": exc.code}
    if exc.extra:
        body.update(exc.extra)
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_body(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # same envelope as domain errors; detail keeps the per-field list
        return JSONResponse(
            status_code=422,
            content={"detail": jsonable_encoder(exc.errors()), "error": ValidationError.code},
        )

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError):
        logger.warning("Version conflict on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=409,
            content=_body(ConcurrentUpdate("Registro alterado por outra operação; recarregue e tente novamente")),
        )

    @app.exception_handler(OperationalError)
    @app.exception_handler(DBAPIError)
    async def backend_error_handler(request: Request, exc: DBAPIError):
        logger.exception("Database failure on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=503,
            content=_body(BackendUnavailable("Banco de dados indisponível")),
        )
