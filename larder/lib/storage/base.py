"""Stored media types and size ceilings."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass

from larder.lib.errors import PayloadTooLargeError
from larder.lib.paths import AssetKind

MB = 1024 * 1024


@dataclass(frozen=True)
class StoredAsset:
    """Metadata for a file written by the media store."""

    entity_id: str
    kind: AssetKind
    relative_path: str
    content_hash: str
    size_bytes: int
    url: str


@dataclass(frozen=True)
class SavedVideo:
    """A video placed in a recipe directory."""

    url: str
    duration: float | None = None


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def content_id(data: bytes) -> str:
    """Derive a stable UUID-shaped name from the SHA-256 of *data*."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, content_hash(data)))


@dataclass(frozen=True)
class SizeLimits:
    """Independent byte ceilings per upload category."""

    avatar: int = 5 * MB
    image: int = 10 * MB
    video: int = 100 * MB

    @classmethod
    def from_config(cls, config) -> SizeLimits:
        return cls(
            avatar=config.max_avatar_file_size,
            image=config.max_image_file_size,
            video=config.max_video_file_size,
        )

    def limit_for(self, kind: AssetKind) -> int:
        if kind is AssetKind.AVATAR:
            return self.avatar
        if kind is AssetKind.VIDEO:
            return self.video
        return self.image

    def check(self, kind: AssetKind, size: int, *, from_file: bool = False) -> None:
        """Raise :class:`PayloadTooLargeError` when *size* exceeds the ceiling for *kind*."""
        limit = self.limit_for(kind)
        if size <= limit:
            return

        if kind is AssetKind.AVATAR:
            message = f"File too large. Maximum size is {limit // MB}MB."
        elif kind is AssetKind.VIDEO:
            label = "Video file" if from_file else "Video"
            message = f"{label} too large: {size} bytes (max: {limit})"
        else:
            message = f"Image too large: {size} bytes (max: {limit})"
        raise PayloadTooLargeError(message, size=size, limit=limit)
