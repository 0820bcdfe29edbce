import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from larder.lib import observability
from larder.lib.errors import (
    ConversionFailedError,
    DownloadFailedError,
    InvalidImageError,
    InvalidUrlError,
    MediaError,
    MediaNotFoundError,
    PayloadTooLargeError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

# Most specific first: UnsupportedFormatError is also an InvalidImageError
MEDIA_ERROR_STATUS: tuple[tuple[type[MediaError], int], ...] = (
    (UnsupportedFormatError, HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (InvalidImageError, HTTP_400_BAD_REQUEST),
    (InvalidUrlError, HTTP_400_BAD_REQUEST),
    (MediaNotFoundError, HTTP_404_NOT_FOUND),
    (PayloadTooLargeError, HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (ConversionFailedError, HTTP_422_UNPROCESSABLE_ENTITY),
    (DownloadFailedError, HTTP_502_BAD_GATEWAY),
)


def status_for_media_error(exc: MediaError) -> int:
    for error_type, status_code in MEDIA_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


def _json_error(status_code: int, detail: str) -> Response:
    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def media_error_handler(request: Request, exc: MediaError) -> Response:
    """Map media pipeline errors to JSON responses with their HTTP status."""
    status_code = status_for_media_error(exc)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Media error on %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("Rejected media request on %s %s: %s", request.method, request.url.path, exc)
    return _json_error(status_code, str(exc))


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _json_error(exc.status_code, detail)


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log unexpected exceptions and return a generic 500."""
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _json_error(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


EXCEPTION_HANDLERS = {
    MediaError: media_error_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}
