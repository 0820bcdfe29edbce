"""Error types raised by the media pipeline."""

from __future__ import annotations


class MediaError(Exception):
    """Base class for all media pipeline errors."""


class InvalidUrlError(MediaError, ValueError):
    """A media URL (or one of its components) has an unexpected shape."""


class InvalidImageError(MediaError):
    """The buffer is too small or not a recognizable image."""


class UnsupportedFormatError(InvalidImageError):
    """No known signature matched the payload."""


class PayloadTooLargeError(MediaError):
    """A payload exceeded its configured size ceiling."""

    def __init__(self, message: str, size: int, limit: int) -> None:
        super().__init__(message)
        self.size = size
        self.limit = limit


class ConversionFailedError(MediaError):
    """Decoding or re-encoding an image failed."""


class DownloadFailedError(MediaError):
    """A remote fetch failed, timed out, or returned something other than an image."""


class MediaNotFoundError(MediaError, FileNotFoundError):
    """The file targeted by a delete does not exist."""
