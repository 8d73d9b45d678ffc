"""
Loguru configuration and the per-request logging middleware.
moviemate.log.py
"""
import os
import sys
import time
import uuid

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from moviemate.responses import error_response

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[request_id]} | <cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = LOG_LEVEL):
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of every request under a request id."""

    async def dispatch(self, request: Request, call_next):
        request_id = uuid.uuid4().hex[:12]
        start = time.perf_counter()
        with logger.contextualize(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
                response = JSONResponse(status_code=500, content=error_response("Internal Server Error"))
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms} ms)")
        response.headers["X-Request-ID"] = request_id
        return response
