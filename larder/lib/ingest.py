"""Import orchestration with compensating cleanup.

The media store itself never cleans up after failed workflows. Callers that
create a recipe directory and then fail wrap the work in
:func:`compensating_cleanup` so the partial directory is removed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from larder.lib.errors import MediaError
from larder.lib.fetch import ImageDownloader
from larder.lib.reconcile import cleanup_file
from larder.lib.storage import LocalMediaStore, SavedVideo
from larder.lib.video import ConversionMethod, TranscodeSettings, convert_to_mp4, resolve_ffmpeg_path

logger = logging.getLogger(__name__)


@asynccontextmanager
async def compensating_cleanup(store: LocalMediaStore, recipe_id: str) -> AsyncIterator[None]:
    """Delete the recipe's media directory if the wrapped block raises."""
    try:
        yield
    except BaseException:
        logger.info("Import failed, removing partial media for recipe %s", recipe_id)
        await store.delete_recipe_dir(recipe_id)
        raise


@dataclass
class ImportedMedia:
    images: list[str] = field(default_factory=list)
    video: SavedVideo | None = None
    conversion: ConversionMethod | None = None


class MediaImporter:
    """Bring downloaded media for one recipe into the store."""

    def __init__(
        self,
        store: LocalMediaStore,
        downloader: ImageDownloader,
        ffmpeg_path: str | None = None,
        transcode: TranscodeSettings | None = None,
        max_images: int = 10,
    ) -> None:
        self._store = store
        self._downloader = downloader
        self._ffmpeg_path = ffmpeg_path
        self._transcode = transcode or TranscodeSettings()
        self._max_images = max_images

    @classmethod
    def from_settings(
        cls, settings, store: LocalMediaStore, client: httpx.AsyncClient | None = None
    ) -> MediaImporter:
        return cls(
            store,
            ImageDownloader.from_config(store, settings.media, client=client),
            ffmpeg_path=resolve_ffmpeg_path(settings.video.ffmpeg_path),
            transcode=TranscodeSettings.from_config(settings.video),
            max_images=settings.media.max_gallery_images,
        )

    async def import_video(
        self,
        source_path: Path,
        recipe_id: str,
        duration: float | None = None,
    ) -> tuple[SavedVideo, ConversionMethod]:
        """Normalize a downloaded video and copy it into the recipe directory.

        The temporary source (or its converted replacement) is always removed.
        """
        working_path = Path(source_path)
        try:
            result = await convert_to_mp4(working_path, self._ffmpeg_path, self._transcode)
            working_path = result.file_path
            logger.info(
                "Video conversion complete",
                extra={"method": result.method.value, "converted": result.converted},
            )
            saved = await self._store.save_video_file(working_path, recipe_id, duration)
            return saved, result.method
        finally:
            await cleanup_file(working_path)

    async def import_recipe_media(
        self,
        recipe_id: str,
        image_field: Any = None,
        video_path: Path | None = None,
        duration: float | None = None,
    ) -> ImportedMedia:
        """Import all media for a new recipe, removing partial output on failure.

        Image downloads and the video are both best effort: a video that cannot
        be stored is logged and left out, and the images already stored are kept.
        """
        imported = ImportedMedia()
        async with compensating_cleanup(self._store, recipe_id):
            if image_field:
                imported.images = await self._downloader.download_all_images(
                    image_field, recipe_id, max_images=self._max_images
                )
            if video_path is not None:
                try:
                    imported.video, imported.conversion = await self.import_video(
                        video_path, recipe_id, duration
                    )
                except (MediaError, OSError):
                    logger.warning(
                        "Could not store video for recipe %s, continuing without it",
                        recipe_id,
                        exc_info=True,
                    )
        return imported
