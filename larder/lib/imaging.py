"""Image normalization to bounded JPEG using Pillow."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import pillow_heif
from PIL import Image, ImageOps

from larder.lib.errors import ConversionFailedError, InvalidImageError
from larder.lib.sniff import MIN_IMAGE_BYTES, MediaFormat

logger = logging.getLogger(__name__)

# Allow huge phone photos through; the resize step bounds the output anyway.
Image.MAX_IMAGE_PIXELS = 100_000_000


@dataclass(frozen=True)
class ImageSettings:
    """Bounds and encoder settings for normalized JPEGs."""

    max_width: int = 1280
    max_height: int = 720
    quality: int = 80
    heic_intermediate_quality: int = 90

    @classmethod
    def from_config(cls, config) -> ImageSettings:
        return cls(
            max_width=config.max_width,
            max_height=config.max_height,
            quality=config.jpeg_quality,
            heic_intermediate_quality=config.heic_intermediate_quality,
        )


def decode_heic(data: bytes, quality: int = 90) -> bytes:
    """Decode a HEIC/HEIF buffer into an intermediate JPEG."""
    heif_file = pillow_heif.open_heif(data, convert_hdr_to_8bit=True)
    img = heif_file.to_pillow()
    exif = img.info.get("exif")

    buf = io.BytesIO()
    save_kwargs: dict = {"quality": quality}
    if exif:
        save_kwargs["exif"] = exif
    _flatten(img).save(buf, format="JPEG", **save_kwargs)
    return buf.getvalue()


def _flatten(img: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    if img.mode == "RGB":
        return img
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def _normalize(data: bytes, source_format: MediaFormat, settings: ImageSettings) -> bytes:
    intermediate = data
    if source_format is MediaFormat.HEIC:
        intermediate = decode_heic(data, quality=settings.heic_intermediate_quality)

    img = Image.open(io.BytesIO(intermediate))
    width, height = img.size
    needs_resize = width > settings.max_width or height > settings.max_height

    img = ImageOps.exif_transpose(img)
    if needs_resize:
        # thumbnail() keeps aspect ratio and never enlarges
        img.thumbnail((settings.max_width, settings.max_height), Image.LANCZOS)

    buf = io.BytesIO()
    _flatten(img).save(
        buf,
        format="JPEG",
        quality=settings.quality,
        optimize=True,
        progressive=True,
        subsampling="4:2:0",
    )
    return buf.getvalue()


def normalize_to_jpeg(
    data: bytes,
    source_format: MediaFormat,
    settings: ImageSettings | None = None,
) -> bytes:
    """Re-encode *data* as an auto-rotated JPEG that fits inside the configured box.

    Raises:
        InvalidImageError: The buffer is too small or its format is unknown.
        ConversionFailedError: Decoding or encoding failed.
    """
    settings = settings or ImageSettings()

    if len(data) < MIN_IMAGE_BYTES or source_format is MediaFormat.UNKNOWN:
        raise InvalidImageError("Invalid or corrupted image buffer")

    try:
        return _normalize(data, source_format, settings)
    except Exception as exc:
        logger.error(
            "Conversion failed", extra={"source_format": source_format.value}, exc_info=True
        )
        raise ConversionFailedError(
            f"Failed to convert {source_format.extension} to JPEG: {exc}"
        ) from exc

