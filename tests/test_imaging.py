"""Tests for JPEG normalization."""

import io
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image, PngImagePlugin

from larder.config import MediaConfig
from larder.lib.errors import ConversionFailedError, InvalidImageError
from larder.lib.imaging import ImageSettings, normalize_to_jpeg
from larder.lib.sniff import MediaFormat, sniff


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data))


class TestImageSettings:
    def test_defaults(self):
        settings = ImageSettings()
        assert (settings.max_width, settings.max_height) == (1280, 720)
        assert settings.quality == 80

    def test_from_config(self):
        config = MediaConfig(max_width=800, max_height=600, jpeg_quality=70)
        settings = ImageSettings.from_config(config)
        assert settings == ImageSettings(
            max_width=800, max_height=600, quality=70, heic_intermediate_quality=90
        )


class TestNormalizeToJpeg:
    def test_output_is_jpeg(self, image_bytes):
        out = normalize_to_jpeg(image_bytes(fmt="PNG"), MediaFormat.PNG)
        assert sniff(out) is MediaFormat.JPEG
        assert _open(out).mode == "RGB"

    def test_large_image_fits_bounding_box(self, image_bytes):
        out = normalize_to_jpeg(image_bytes(size=(2000, 1000), fmt="JPEG"), MediaFormat.JPEG)
        assert _open(out).size == (1280, 640)

    def test_tall_image_limited_by_height(self, image_bytes):
        out = normalize_to_jpeg(image_bytes(size=(720, 1440), fmt="PNG"), MediaFormat.PNG)
        width, height = _open(out).size
        assert height == 720
        assert width == 360

    def test_small_image_is_not_enlarged(self, image_bytes):
        out = normalize_to_jpeg(image_bytes(size=(200, 100), fmt="WEBP"), MediaFormat.WEBP)
        assert _open(out).size == (200, 100)

    def test_custom_bounds(self, image_bytes):
        settings = ImageSettings(max_width=100, max_height=100)
        out = normalize_to_jpeg(image_bytes(size=(400, 200), fmt="PNG"), MediaFormat.PNG, settings)
        assert _open(out).size == (100, 50)

    def test_exif_orientation_is_applied(self):
        img = Image.new("RGB", (100, 200), (200, 30, 30))
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 CW
        buf = io.BytesIO()
        img.save(buf, format="JPEG", exif=exif.tobytes())

        out = normalize_to_jpeg(buf.getvalue(), MediaFormat.JPEG)

        assert _open(out).size == (200, 100)

    def test_transparency_flattened_onto_white(self):
        img = Image.new("RGBA", (120, 80), (0, 0, 0, 0))
        info = PngImagePlugin.PngInfo()
        info.add_text("Comment", "transparent " * 20)
        buf = io.BytesIO()
        img.save(buf, format="PNG", pnginfo=info)

        out = normalize_to_jpeg(buf.getvalue(), MediaFormat.PNG)

        r, g, b = _open(out).getpixel((60, 40))
        assert min(r, g, b) >= 250

    def test_same_input_gives_same_output(self, image_bytes):
        data = image_bytes(size=(300, 300), fmt="PNG")
        assert normalize_to_jpeg(data, MediaFormat.PNG) == normalize_to_jpeg(data, MediaFormat.PNG)

    def test_tiny_buffer_rejected(self):
        with pytest.raises(InvalidImageError):
            normalize_to_jpeg(b"\xff\xd8\xff" + b"\x00" * 20, MediaFormat.JPEG)

    def test_unknown_format_rejected(self, image_bytes):
        with pytest.raises(InvalidImageError):
            normalize_to_jpeg(image_bytes(fmt="PNG"), MediaFormat.UNKNOWN)

    def test_corrupt_payload_raises_conversion_failed(self):
        data = b"\x89PNG\r\n\x1a\n" + b"\x13" * 300
        with pytest.raises(ConversionFailedError, match="Failed to convert .png to JPEG"):
            normalize_to_jpeg(data, MediaFormat.PNG)


class TestHeic:
    def test_heic_goes_through_intermediate_decode(self):
        heif_file = MagicMock()
        heif_file.to_pillow.return_value = Image.new("RGB", (1600, 1200), (10, 120, 10))
        data = b"\x00\x00\x00\x18ftypheic" + b"\x00" * 300

        with patch("larder.lib.imaging.pillow_heif.open_heif", return_value=heif_file) as open_heif:
            out = normalize_to_jpeg(data, MediaFormat.HEIC)

        open_heif.assert_called_once_with(data, convert_hdr_to_8bit=True)
        assert sniff(out) is MediaFormat.JPEG
        assert _open(out).size == (960, 720)

    def test_heic_decode_error_is_conversion_failure(self):
        data = b"\x00\x00\x00\x18ftypheic" + b"\x00" * 300
        with patch("larder.lib.imaging.pillow_heif.open_heif", side_effect=ValueError("bad")):
            with pytest.raises(ConversionFailedError, match="Failed to convert .heic"):
                normalize_to_jpeg(data, MediaFormat.HEIC)
