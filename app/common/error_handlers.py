from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.core.exceptions import LedgerError
from app.logger_config import logger


def register_error_handlers(app: FastAPI):
    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, e: LedgerError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {e.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {e.error} {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, e: RequestValidationError):
        errors = e.errors()
        first = errors[0] if errors else {}
        loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": first.get("msg", "Invalid request"),
                "error": "VALIDATION_ERROR",
                "field": ".".join(loc) or None,
                "entity": None,
                "status_code": 422,
                "details": [
                    {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg")} for err in errors
                ],
            },
        )

    # Handle HTTP (e.g. 401, 404 for unknown routes)
    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, e: HTTPException):
        return JSONResponse(
            status_code=e.status_code,
            content={
                "success": False,
                "message": e.detail,
                "error": "HTTP_ERROR",
                "field": None,
                "entity": None,
                "status_code": e.status_code,
            },
            headers=getattr(e, "headers", None),
        )

    # Handle all other exceptions (coding, DB errors, etc.)
    @app.exception_handler(Exception)
    async def handle_exception(request: Request, e: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal Server Error",
                "error": "INTERNAL_ERROR",
                "field": None,
                "entity": None,
                "status_code": 500,
            },
        )
