"""Shared helpers for ASGI middleware."""

from litestar.types import Send


async def send_response_start(send: Send, status: int, media_type: str, length: int | None = None) -> None:
    """Send the ``http.response.start`` message for a plain response."""
    headers = [(b"content-type", media_type.encode())]
    if length is not None:
        headers.append((b"content-length", str(length).encode()))
    await send({"type": "http.response.start", "status": status, "headers": headers})


async def send_not_found(send: Send) -> None:
    """Send a plain-text 404 response."""
    await send_response_start(send, 404, "text/plain", length=9)
    await send({"type": "http.response.body", "body": b"Not Found"})
