"""JSON API for uploading and deleting recipe media."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Annotated, Any
from uuid import UUID

from litestar import Controller, Request, delete, post
from litestar.datastructures import UploadFile
from litestar.enums import RequestEncodingType
from litestar.exceptions import ClientException, NotFoundException
from litestar.params import Body
from litestar.response import Response
from sqlalchemy.ext.asyncio import AsyncSession

from larder.db.services import media_service
from larder.lib.errors import DownloadFailedError, InvalidUrlError, MediaError, UnsupportedFormatError
from larder.lib.fetch import ImageDownloader, parse_image_candidates
from larder.lib.paths import AssetKind
from larder.lib.storage import LocalMediaStore

logger = logging.getLogger(__name__)

ALLOWED_VIDEO_MIME_TYPES = frozenset({"video/mp4", "video/webm", "video/quicktime"})

MultipartUpload = Annotated[UploadFile, Body(media_type=RequestEncodingType.MULTI_PART)]


@dataclass
class VideoUpload:
    video: UploadFile
    duration: float | None = None
    order: int | None = None


@dataclass
class ImageImport:
    image: Any = None
    url: str | None = None


def _store(request: Request) -> LocalMediaStore:
    return request.app.state.media_store


def _downloader(request: Request) -> ImageDownloader:
    return request.app.state.image_downloader


class MediaController(Controller):
    """Upload endpoints return the stored URL; deletes return 204."""

    path = "/api"

    async def _save_image(
        self, request: Request, data: UploadFile, entity_id: UUID, kind: AssetKind
    ) -> Response:
        content = await data.read()
        asset = await _store(request).save(
            content, str(entity_id), kind, content_type=data.content_type
        )
        logger.info("Stored uploaded %s %s", kind.value, asset.url)
        return Response(
            content={
                "url": asset.url,
                "content_hash": asset.content_hash,
                "size": asset.size_bytes,
            },
            status_code=201,
            media_type="application/json",
        )

    @post("/recipes/{recipe_id:uuid}/images")
    async def upload_recipe_image(
        self, request: Request, recipe_id: UUID, data: MultipartUpload
    ) -> Response:
        """Store a gallery or cover image for a recipe."""
        return await self._save_image(request, data, recipe_id, AssetKind.IMAGE)

    @post("/recipes/{recipe_id:uuid}/steps/images")
    async def upload_step_image(
        self, request: Request, recipe_id: UUID, data: MultipartUpload
    ) -> Response:
        return await self._save_image(request, data, recipe_id, AssetKind.STEP_IMAGE)

    @post("/users/{user_id:uuid}/avatar")
    async def upload_avatar(self, request: Request, user_id: UUID, data: MultipartUpload) -> Response:
        return await self._save_image(request, data, user_id, AssetKind.AVATAR)

    @post("/recipes/{recipe_id:uuid}/images/import")
    async def import_recipe_images(
        self, request: Request, db_session: AsyncSession, recipe_id: UUID, data: ImageImport
    ) -> Response:
        """Download remote images for a recipe, largest candidates first.

        ``image`` takes any JSON-LD ``image`` value (a URL, a list, or
        ``ImageObject`` nodes); ``url`` is shorthand for a single URL. Rows are
        added only when the recipe already exists.
        """
        field = data.image if data.image is not None else data.url
        if not parse_image_candidates(field):
            raise InvalidUrlError("No valid image URL to import")

        max_images = request.app.state.settings.media.max_gallery_images
        urls = await _downloader(request).download_all_images(
            field, str(recipe_id), max_images=max_images
        )
        if not urls:
            raise DownloadFailedError("Failed to download any of the images")

        if await media_service.recipe_exists(db_session, recipe_id):
            await media_service.add_recipe_images(db_session, recipe_id, urls)
        logger.info("Imported %d image(s) for recipe %s", len(urls), recipe_id)

        return Response(content={"urls": urls}, status_code=201, media_type="application/json")

    @post("/recipes/{recipe_id:uuid}/videos")
    async def upload_recipe_video(
        self,
        request: Request,
        db_session: AsyncSession,
        recipe_id: UUID,
        data: Annotated[VideoUpload, Body(media_type=RequestEncodingType.MULTI_PART)],
    ) -> Response:
        """Store an uploaded video and attach it to the recipe when the recipe exists.

        Videos for a recipe that has not been saved yet are stored and their
        URL returned without a database row.
        """
        max_videos = request.app.state.settings.media.max_recipe_videos
        current_count = await media_service.count_recipe_videos(db_session, recipe_id)
        if current_count >= max_videos:
            raise ClientException(detail=f"Maximum {max_videos} videos allowed per recipe")

        upload = data.video
        if upload.content_type not in ALLOWED_VIDEO_MIME_TYPES:
            raise UnsupportedFormatError(
                "Invalid file type. Only MP4, WebM, and MOV videos are allowed."
            )

        content = await upload.read()
        ext = PurePath(upload.filename or "").suffix.lower() or ".mp4"
        saved = await _store(request).save_video_bytes(
            content, str(recipe_id), original_ext=ext, duration=data.duration
        )
        order = data.order if data.order is not None else current_count

        body = {"url": saved.url, "duration": saved.duration, "order": order, "id": None}
        if await media_service.recipe_exists(db_session, recipe_id):
            record = await media_service.add_recipe_video(
                db_session, recipe_id, saved.url, duration=saved.duration, order=order
            )
            body["id"] = str(record.id)
            logger.info("Gallery video uploaded for recipe %s: %s", recipe_id, saved.url)
        else:
            logger.info("Gallery video uploaded for pending recipe %s: %s", recipe_id, saved.url)

        return Response(content=body, status_code=201, media_type="application/json")

    @delete("/videos/{video_id:uuid}")
    async def delete_recipe_video(
        self, request: Request, db_session: AsyncSession, video_id: UUID
    ) -> None:
        """Delete a video row and, best effort, its file."""
        record = await media_service.get_recipe_video(db_session, video_id)
        if record is None:
            raise NotFoundException(detail="Video not found")

        try:
            await _store(request).delete_video_by_url(record.video)
        except (MediaError, OSError):
            logger.warning("Could not delete gallery video file %s", record.video, exc_info=True)

        await media_service.delete_recipe_video(db_session, video_id)
        logger.info("Gallery video %s deleted", video_id)

    @delete("/media")
    async def delete_media(self, request: Request, url: str) -> None:
        """Delete any stored media file by its canonical URL."""
        await _store(request).delete_by_url(url)
