"""ASGI middleware serving stored media at its public URLs."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from pathlib import Path

from litestar.types import ASGIApp, Receive, Scope, Send

from larder.lib.errors import InvalidUrlError
from larder.lib.paths import AVATARS_DIR, RECIPES_DIR, VIDEO_FILENAME_RE, MediaPaths
from larder.lib.video import video_mime_type
from larder.middleware.helpers import send_not_found, send_response_start

logger = logging.getLogger(__name__)

MEDIA_PREFIXES = (f"/{RECIPES_DIR}/", f"/{AVATARS_DIR}/")
CHUNK_SIZE = 256 * 1024


class MediaFilesMiddleware:
    """Serve files under ``/recipes/...`` and ``/avatars/...`` from the uploads root.

    Both canonical and legacy URL shapes are served. Anything that does not
    parse as a media URL, or that would resolve outside the uploads root, is
    answered with 404 without touching the disk. File bodies are sent in
    chunks of *chunk_size* bytes so large videos are never held in memory.
    """

    def __init__(self, app: ASGIApp, uploads_root: Path, chunk_size: int = CHUNK_SIZE) -> None:
        self.app = app
        self._paths = MediaPaths(uploads_root)
        self._chunk_size = chunk_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(MEDIA_PREFIXES):
            await self.app(scope, receive, send)
            return

        if scope.get("method", "GET") not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        if ".." in path.split("/") or "\x00" in path:
            await send_not_found(send)
            return

        try:
            candidate = self._paths.resolve_readable(path)
        except InvalidUrlError:
            await send_not_found(send)
            return

        base_path = self._paths.root.resolve()
        try:
            resolved = candidate.resolve()
        except (OSError, ValueError):
            await send_not_found(send)
            return

        if not resolved.is_relative_to(base_path) or not resolved.is_file():
            await send_not_found(send)
            return

        try:
            handle = await asyncio.to_thread(resolved.open, "rb")
        except OSError:
            logger.warning("Could not read media file %s", resolved, exc_info=True)
            await send_not_found(send)
            return

        try:
            size = os.fstat(handle.fileno()).st_size
            await send_response_start(send, 200, _media_type(resolved), length=size)
            if scope.get("method") == "HEAD":
                await send({"type": "http.response.body", "body": b""})
                return

            while chunk := await asyncio.to_thread(handle.read, self._chunk_size):
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
            await send({"type": "http.response.body", "body": b""})
        finally:
            handle.close()


def _media_type(path: Path) -> str:
    if VIDEO_FILENAME_RE.match(path.name):
        return video_mime_type(path)
    return mimetypes.guess_type(str(path))[0] or "application/octet-stream"
