"""Media format detection from magic bytes."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from urllib.parse import urlsplit

# Anything shorter cannot hold a header plus pixel data.
MIN_IMAGE_BYTES = 100
MIN_SNIFF_BYTES = 12


class MediaFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    HEIC = "heic"
    MP4 = "mp4"
    MOV = "mov"
    WEBM = "webm"
    UNKNOWN = "unknown"

    @property
    def extension(self) -> str:
        return _EXTENSIONS.get(self, "")

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES.get(self, "application/octet-stream")

    @property
    def is_image(self) -> bool:
        return self in IMAGE_FORMATS

    @property
    def is_video(self) -> bool:
        return self in VIDEO_FORMATS


IMAGE_FORMATS = frozenset(
    {MediaFormat.JPEG, MediaFormat.PNG, MediaFormat.WEBP, MediaFormat.AVIF, MediaFormat.HEIC}
)
VIDEO_FORMATS = frozenset({MediaFormat.MP4, MediaFormat.MOV, MediaFormat.WEBM})

_EXTENSIONS = {
    MediaFormat.JPEG: ".jpg",
    MediaFormat.PNG: ".png",
    MediaFormat.WEBP: ".webp",
    MediaFormat.AVIF: ".avif",
    MediaFormat.HEIC: ".heic",
    MediaFormat.MP4: ".mp4",
    MediaFormat.MOV: ".mov",
    MediaFormat.WEBM: ".webm",
}

_CONTENT_TYPES = {
    MediaFormat.JPEG: "image/jpeg",
    MediaFormat.PNG: "image/png",
    MediaFormat.WEBP: "image/webp",
    MediaFormat.AVIF: "image/avif",
    MediaFormat.HEIC: "image/heic",
    MediaFormat.MP4: "video/mp4",
    MediaFormat.MOV: "video/quicktime",
    MediaFormat.WEBM: "video/webm",
}

_CONTENT_TYPE_HINTS = {
    "image/jpeg": MediaFormat.JPEG,
    "image/jpg": MediaFormat.JPEG,
    "image/png": MediaFormat.PNG,
    "image/webp": MediaFormat.WEBP,
    "image/avif": MediaFormat.AVIF,
    "image/heic": MediaFormat.HEIC,
    "image/heif": MediaFormat.HEIC,
}

_URL_EXTENSION_HINTS = {
    ".jpg": MediaFormat.JPEG,
    ".jpeg": MediaFormat.JPEG,
    ".png": MediaFormat.PNG,
    ".webp": MediaFormat.WEBP,
    ".avif": MediaFormat.AVIF,
}

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_EBML_MAGIC = b"\x1a\x45\xdf\xa3"
_AVIF_BRANDS = {"avif", "avis"}
_HEIC_BRANDS = {"heic", "mif1", "msf1"}
_QUICKTIME_BRANDS = {"qt  ", "moov"}


def is_ftyp_container(data: bytes) -> bool:
    """Whether the buffer starts with an ISO base media ``ftyp`` box."""
    return len(data) >= MIN_SNIFF_BYTES and data[4:8] == b"ftyp"


def _sniff_ftyp_brand(brand: str) -> MediaFormat:
    if brand in _AVIF_BRANDS:
        return MediaFormat.AVIF
    if brand in _HEIC_BRANDS or brand.startswith(("hei", "hev")):
        return MediaFormat.HEIC
    if brand in _QUICKTIME_BRANDS:
        return MediaFormat.MOV
    # isom, iso2, mp41, mp42, avc1, M4V and everything else we cannot place
    return MediaFormat.MP4


def sniff(data: bytes) -> MediaFormat:
    """Detect the container format of *data* from its signature bytes.

    Filenames and declared content types are never consulted here.
    """
    if len(data) < MIN_SNIFF_BYTES:
        return MediaFormat.UNKNOWN
    if data[:3] == b"\xff\xd8\xff":
        return MediaFormat.JPEG
    if data[:8] == _PNG_SIGNATURE:
        return MediaFormat.PNG
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return MediaFormat.WEBP
    if data[4:8] == b"ftyp":
        return _sniff_ftyp_brand(data[8:12].decode("ascii", errors="replace"))
    if data[:4] == _EBML_MAGIC:
        return MediaFormat.WEBM
    return MediaFormat.UNKNOWN


def sniff_image(data: bytes) -> MediaFormat:
    """Like :func:`sniff`, restricted to viable image buffers."""
    if len(data) < MIN_IMAGE_BYTES:
        return MediaFormat.UNKNOWN
    fmt = sniff(data)
    return fmt if fmt.is_image else MediaFormat.UNKNOWN


def sniff_video(data: bytes) -> MediaFormat:
    fmt = sniff(data)
    return fmt if fmt.is_video else MediaFormat.UNKNOWN


def format_from_content_type(content_type: str | None) -> MediaFormat:
    if not content_type:
        return MediaFormat.UNKNOWN
    mime = content_type.split(";", 1)[0].strip().lower()
    return _CONTENT_TYPE_HINTS.get(mime, MediaFormat.UNKNOWN)


def format_from_url(url: str | None) -> MediaFormat:
    if not url:
        return MediaFormat.UNKNOWN
    try:
        path = urlsplit(url).path
    except ValueError:
        return MediaFormat.UNKNOWN
    return _URL_EXTENSION_HINTS.get(PurePosixPath(path).suffix.lower(), MediaFormat.UNKNOWN)


def resolve_image_format(
    data: bytes,
    content_type: str | None = None,
    url: str | None = None,
) -> MediaFormat:
    """Pick the image format used to decode *data*.

    The byte sniff always wins. Caller hints are only consulted for ``ftyp``
    containers whose brand the sniffer could not place as an image, and only
    HEIC or AVIF hints are accepted for them.
    """
    fmt = sniff_image(data)
    if fmt is not MediaFormat.UNKNOWN:
        return fmt

    if len(data) < MIN_IMAGE_BYTES or not is_ftyp_container(data):
        return MediaFormat.UNKNOWN

    for hint in (format_from_content_type(content_type), format_from_url(url)):
        if hint in (MediaFormat.HEIC, MediaFormat.AVIF):
            return hint
    return MediaFormat.UNKNOWN
