import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from identity_service.core.context import get_request_id
from identity_service.core.exceptions import IdentityServiceError

logger = logging.getLogger("identity_service.errors")


def register_error_handlers(app: FastAPI) -> FastAPI:
    @app.exception_handler(IdentityServiceError)
    async def identity_service_error(request: Request, exc: IdentityServiceError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):  # noqa: BLE001
        correlation_id = get_request_id() or uuid.uuid4().hex
        logger.exception("Unhandled error cid=%s path=%s method=%s", correlation_id, request.url.path, request.method)
        return JSONResponse(status_code=500, content={"detail": "Internal server error", "cid": correlation_id})

    return app
