"""
Domain exceptions raised by the service layer.
The application maps each of them to an HTTP status in ``register_exception_handlers``.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..fhir.client import FhirClientError

logger = logging.getLogger(__name__)


class SdohExchangeError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequestError(SdohExchangeError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(SdohExchangeError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(SdohExchangeError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(SdohExchangeError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SdohExchangeError):
    status_code = status.HTTP_409_CONFLICT


class ConfigurationError(SdohExchangeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SdohExchangeError)
    async def domain_exception_handler(request: Request, exc: SdohExchangeError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(FhirClientError)
    async def fhir_exception_handler(request: Request, exc: FhirClientError):
        logger.warning(
            "FHIR server error on %s %s: %s", request.method, request.url.path, exc,
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": f"FHIR server error: {exc}"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred"},
        )
