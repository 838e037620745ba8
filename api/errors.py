"""
Exception handlers: domain errors and validation failures become
`{"error": message}` JSON with the matching status code.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lib.errors import ReferralError
from lib.logging import get_logger

logger = get_logger("errors")


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def validation_message(exc: RequestValidationError) -> str:
    """Short caller-facing summary of a pydantic validation failure"""
    errors = exc.errors()

    missing = [_field_name(e["loc"]) for e in errors if e.get("type") == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    first = errors[0] if errors else {}
    field = _field_name(first.get("loc", ()))
    if first.get("type") == "enum":
        expected = first.get("ctx", {}).get("expected", "")
        return f"Invalid {field}. Must be one of: {expected.replace(' or ', ', ')}"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


async def referral_error_handler(request: Request, exc: ReferralError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": validation_message(exc)})


async def unhandled_error_handler(request: Request, exc: Exception):
    """Log with traceback; never leak internals to the caller"""
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ReferralError, referral_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
