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
from larder.lib.paths import AssetKind, MediaPaths
from larder.lib.sniff import MediaFormat, sniff
from larder.lib.storage import LocalMediaStore

__all__ = [
    "AssetKind",
    "ConversionFailedError",
    "DownloadFailedError",
    "InvalidImageError",
    "InvalidUrlError",
    "LocalMediaStore",
    "MediaError",
    "MediaFormat",
    "MediaNotFoundError",
    "MediaPaths",
    "PayloadTooLargeError",
    "UnsupportedFormatError",
    "sniff",
]
