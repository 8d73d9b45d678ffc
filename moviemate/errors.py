"""
Catalog exceptions and the FastAPI handlers that turn them into response envelopes.
moviemate.errors.py
"""
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from moviemate.responses import error_response, validation_error_response


class CatalogError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: str = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(CatalogError):
    status_code = status.HTTP_400_BAD_REQUEST


class MovieNotFoundError(CatalogError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, movie_id):
        super().__init__("Movie not found", f"No movie found with ID: {movie_id}")
        self.movie_id = movie_id


class DuplicateMovieError(CatalogError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, title, year):
        super().__init__(
            "Duplicate movie",
            f'A movie with title "{title}" and year {year} already exists',
        )
        self.title = title
        self.year = year


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def validation_errors(errors) -> list:
    return [
        {
            "field": _field_name(err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "value": err.get("input"),
        }
        for err in errors
    ]


async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code,
                        content=error_response(exc.message, exc.details))


async def request_validation_handler(request: Request, exc):
    """Handles both FastAPI request errors and pydantic errors raised by the service."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(validation_error_response(validation_errors(exc.errors()))),
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT,
                        content=error_response("Duplicate resource"))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=error_response(message))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content=error_response("Internal Server Error"))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(CatalogError, catalog_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, request_validation_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
