"""Local filesystem media store with content-addressed image names."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

from larder.lib import observability
from larder.lib.errors import MediaNotFoundError, UnsupportedFormatError
from larder.lib.imaging import ImageSettings, normalize_to_jpeg
from larder.lib.paths import AssetKind, AssetRef, MediaPaths, match_url, parse_url, url_for
from larder.lib.sniff import MediaFormat, resolve_image_format, sniff_video
from larder.lib.storage.base import SavedVideo, SizeLimits, StoredAsset, content_hash, content_id

logger = logging.getLogger(__name__)

ALLOWED_VIDEO_EXTS = frozenset({".mp4", ".webm", ".mov", ".m4v"})
IMAGE_KINDS = frozenset({AssetKind.IMAGE, AssetKind.STEP_IMAGE, AssetKind.AVATAR})

_DELETE_LABELS = {
    AssetKind.IMAGE: "recipe image",
    AssetKind.STEP_IMAGE: "step image",
    AssetKind.VIDEO: "video",
    AssetKind.AVATAR: "avatar",
}


class LocalMediaStore:
    """Persist normalized media below an uploads root.

    Images are named after a hash of their normalized bytes, so saving the
    same picture twice for one owner writes a single file. Videos are named
    after the upload time.
    """

    def __init__(
        self,
        paths: MediaPaths,
        limits: SizeLimits | None = None,
        image_settings: ImageSettings | None = None,
    ) -> None:
        self._paths = paths
        self._limits = limits or SizeLimits()
        self._image_settings = image_settings or ImageSettings()

    @classmethod
    def from_config(cls, config) -> LocalMediaStore:
        return cls(
            MediaPaths(config.uploads_path),
            limits=SizeLimits.from_config(config),
            image_settings=ImageSettings.from_config(config),
        )

    @property
    def paths(self) -> MediaPaths:
        return self._paths

    @property
    def limits(self) -> SizeLimits:
        return self._limits

    # -- images --

    async def save(
        self,
        data: bytes,
        entity_id: str,
        kind: AssetKind = AssetKind.IMAGE,
        *,
        content_type: str | None = None,
        source_url: str | None = None,
    ) -> StoredAsset:
        """Normalize image bytes to JPEG and store them under their content id.

        Raises:
            PayloadTooLargeError: *data* exceeds the ceiling for *kind*.
            UnsupportedFormatError: No image signature was recognized.
            ConversionFailedError: Pillow could not decode or encode the image.
        """
        if kind not in IMAGE_KINDS:
            raise ValueError(f"save() stores images, not {kind.value}")

        directory = self._paths.directory_for(entity_id, kind)
        self._limits.check(kind, len(data))

        source_format = resolve_image_format(data, content_type=content_type, url=source_url)
        if source_format is MediaFormat.UNKNOWN:
            raise UnsupportedFormatError("Buffer is not a valid image")

        with observability.span("media.normalize_image", source_format=source_format.value):
            final = await asyncio.to_thread(
                normalize_to_jpeg, data, source_format, self._image_settings
            )

        ref = AssetRef(entity_id=entity_id, filename=f"{content_id(final)}.jpg", kind=kind)
        path = directory / ref.filename
        written = await asyncio.to_thread(self._write_if_absent, path, final)
        if written:
            logger.debug(
                "Stored %s", kind.value, extra={"entity_id": entity_id, "path": str(path)}
            )

        return StoredAsset(
            entity_id=entity_id,
            kind=kind,
            relative_path=self._paths.relative_path(ref),
            content_hash=content_hash(final),
            size_bytes=len(final),
            url=url_for(ref),
        )

    async def save_image_bytes(self, data: bytes, recipe_id: str) -> str:
        """Store a recipe image; returns ``/recipes/{recipeId}/{hash}.jpg``."""
        return (await self.save(data, recipe_id, AssetKind.IMAGE)).url

    async def save_step_image_bytes(self, data: bytes, recipe_id: str) -> str:
        """Store a step image; returns ``/recipes/{recipeId}/steps/{hash}.jpg``."""
        return (await self.save(data, recipe_id, AssetKind.STEP_IMAGE)).url

    async def save_avatar_bytes(self, data: bytes, user_id: str) -> str:
        return (await self.save(data, user_id, AssetKind.AVATAR)).url

    # -- videos --

    async def save_video_bytes(
        self,
        data: bytes,
        recipe_id: str,
        original_ext: str | None = None,
        duration: float | None = None,
    ) -> SavedVideo:
        """Write uploaded video bytes as ``video-{epochMillis}{ext}``.

        The extension comes from the byte signature, falling back to an
        allowed *original_ext*.
        """
        recipe_dir = self._paths.recipe_dir(recipe_id)
        self._limits.check(AssetKind.VIDEO, len(data))

        ext = sniff_video(data).extension or _normalize_ext(original_ext)
        if ext not in ALLOWED_VIDEO_EXTS:
            raise UnsupportedFormatError("Buffer is not a supported video")

        filename = _video_filename(ext)
        path = recipe_dir / filename
        await asyncio.to_thread(self._write_file, path, data)

        logger.info(
            "Video bytes saved",
            extra={"recipe_id": recipe_id, "file_name": filename, "size": len(data)},
        )
        ref = AssetRef(entity_id=recipe_id, filename=filename, kind=AssetKind.VIDEO)
        return SavedVideo(url=url_for(ref), duration=duration)

    async def save_video_file(
        self,
        source_path: Path,
        recipe_id: str,
        duration: float | None = None,
    ) -> SavedVideo:
        """Copy a (normalized) video file into the recipe directory."""
        source_path = Path(source_path)
        recipe_dir = self._paths.recipe_dir(recipe_id)

        size = (await asyncio.to_thread(source_path.stat)).st_size
        self._limits.check(AssetKind.VIDEO, size, from_file=True)

        filename = _video_filename(source_path.suffix.lower() or ".mp4")
        dest = recipe_dir / filename
        await asyncio.to_thread(self._copy_file, source_path, dest)

        logger.info(
            "Video file saved",
            extra={"source_path": str(source_path), "dest_path": str(dest), "size": size},
        )
        ref = AssetRef(entity_id=recipe_id, filename=filename, kind=AssetKind.VIDEO)
        return SavedVideo(url=url_for(ref), duration=duration)

    # -- deletion --

    async def delete_image_by_url(self, url: str) -> None:
        await self._delete(parse_url(url, AssetKind.IMAGE))

    async def delete_step_image_by_url(self, url: str) -> None:
        await self._delete(parse_url(url, AssetKind.STEP_IMAGE))

    async def delete_video_by_url(self, url: str) -> None:
        await self._delete(parse_url(url, AssetKind.VIDEO))

    async def delete_by_url(self, url: str) -> None:
        """Delete any canonical media URL, whatever its kind."""
        await self._delete(match_url(url))

    async def delete_recipe_dir(self, recipe_id: str) -> None:
        """Remove a recipe's whole media directory. Never raises."""
        try:
            recipe_dir = self._paths.recipe_dir(recipe_id)
            if not await asyncio.to_thread(recipe_dir.exists):
                logger.debug("Recipe media directory does not exist, skipping: %s", recipe_dir)
                return
            await asyncio.to_thread(shutil.rmtree, recipe_dir)
            logger.info("Deleted recipe media directory %s", recipe_dir)
        except Exception:
            logger.warning("Could not delete media directory for recipe %s", recipe_id, exc_info=True)

    async def delete_step_images_dir(self, recipe_id: str) -> None:
        """Remove only the ``steps/`` subdirectory of a recipe. Never raises."""
        try:
            steps_dir = self._paths.steps_dir(recipe_id)
            await asyncio.to_thread(shutil.rmtree, steps_dir, True)
            logger.info("Deleted step images directory for recipe %s", recipe_id)
        except Exception:
            logger.warning("Could not delete step images for recipe %s", recipe_id, exc_info=True)

    async def exists(self, url: str) -> bool:
        path = self._paths.url_to_path(url)
        return await asyncio.to_thread(path.is_file)

    # -- internal helpers --

    async def _delete(self, ref: AssetRef) -> None:
        path = self._paths.path_for(ref)
        label = _DELETE_LABELS[ref.kind]
        fields = {"entity_id": ref.entity_id, "file_name": ref.filename}
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as exc:
            logger.warning("Could not delete %s: file missing", label, extra=fields)
            raise MediaNotFoundError(f"{label} not found: {url_for(ref)}") from exc
        except OSError:
            logger.warning("Could not delete %s", label, extra=fields, exc_info=True)
            raise
        logger.info("Deleted %s", label, extra=fields)

    @staticmethod
    def _write_if_absent(path: Path, data: bytes) -> bool:
        # Same name means same bytes; an existing file is already correct.
        if path.exists():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return True

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _copy_file(source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)


def _normalize_ext(ext: str | None) -> str:
    if not ext:
        return ""
    ext = ext.lower()
    return ext if ext.startswith(".") else f".{ext}"


def _video_filename(ext: str) -> str:
    return f"video-{time.time_ns() // 1_000_000}{ext}"
