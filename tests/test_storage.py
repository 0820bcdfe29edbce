"""Tests for the local media store."""

import io
import re

import pytest
from PIL import Image

from larder.config import MediaConfig
from larder.lib.errors import (
    InvalidUrlError,
    MediaNotFoundError,
    PayloadTooLargeError,
    UnsupportedFormatError,
)
from larder.lib.paths import AssetKind
from larder.lib.storage import LocalMediaStore, SizeLimits, content_id

RECIPE_ID = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
USER_ID = "0c8e6a2f-4b1d-4c3e-9f7a-5d6b8e0a1c2f"

CONTENT_NAME_RE = re.compile(r"^[a-f0-9-]{36}\.jpg$")


class TestContentId:
    def test_stable_and_uuid_shaped(self):
        assert content_id(b"abc") == content_id(b"abc")
        assert re.match(r"^[a-f0-9-]{36}$", content_id(b"abc"))

    def test_differs_per_content(self):
        assert content_id(b"abc") != content_id(b"abd")


class TestSizeLimits:
    def test_at_limit_is_accepted(self):
        SizeLimits(image=100).check(AssetKind.IMAGE, 100)

    def test_image_message(self):
        with pytest.raises(PayloadTooLargeError, match=r"Image too large: 101 bytes \(max: 100\)"):
            SizeLimits(image=100).check(AssetKind.IMAGE, 101)

    def test_avatar_message_in_megabytes(self):
        limits = SizeLimits(avatar=5 * 1024 * 1024)
        with pytest.raises(PayloadTooLargeError, match=r"Maximum size is 5MB"):
            limits.check(AssetKind.AVATAR, 5 * 1024 * 1024 + 1)

    def test_video_file_message(self):
        with pytest.raises(PayloadTooLargeError, match="Video file too large") as exc_info:
            SizeLimits(video=10).check(AssetKind.VIDEO, 11, from_file=True)
        assert exc_info.value.size == 11
        assert exc_info.value.limit == 10

    def test_categories_are_independent(self):
        limits = SizeLimits(avatar=10, image=1000)
        limits.check(AssetKind.STEP_IMAGE, 500)
        with pytest.raises(PayloadTooLargeError):
            limits.check(AssetKind.AVATAR, 500)

    def test_from_config(self):
        limits = SizeLimits.from_config(MediaConfig(max_image_file_size=1234))
        assert limits.limit_for(AssetKind.IMAGE) == 1234
        assert limits.limit_for(AssetKind.VIDEO) == 100 * 1024 * 1024


class TestSaveImage:
    @pytest.mark.asyncio
    async def test_saves_normalized_jpeg(self, store, media_paths, image_bytes):
        asset = await store.save(image_bytes(fmt="PNG"), RECIPE_ID)

        filename = asset.url.rsplit("/", 1)[1]
        assert CONTENT_NAME_RE.match(filename)
        assert asset.url == f"/recipes/{RECIPE_ID}/{filename}"
        assert asset.relative_path == f"recipes/{RECIPE_ID}/{filename}"

        stored = (media_paths.recipe_dir(RECIPE_ID) / filename).read_bytes()
        assert stored[:3] == b"\xff\xd8\xff"
        assert asset.size_bytes == len(stored)
        assert filename == f"{content_id(stored)}.jpg"

    @pytest.mark.asyncio
    async def test_same_image_twice_writes_one_file(self, store, media_paths, image_bytes):
        data = image_bytes(fmt="JPEG")
        first = await store.save_image_bytes(data, RECIPE_ID)
        second = await store.save_image_bytes(data, RECIPE_ID)

        assert first == second
        assert len(list(media_paths.recipe_dir(RECIPE_ID).iterdir())) == 1

    @pytest.mark.asyncio
    async def test_step_image_location(self, store, media_paths, image_bytes):
        url = await store.save_step_image_bytes(image_bytes(fmt="WEBP"), RECIPE_ID)

        assert url.startswith(f"/recipes/{RECIPE_ID}/steps/")
        assert media_paths.url_to_path(url).is_file()

    @pytest.mark.asyncio
    async def test_avatar_location(self, store, media_paths, image_bytes):
        url = await store.save_avatar_bytes(image_bytes(fmt="PNG"), USER_ID)

        assert url.startswith(f"/avatars/{USER_ID}/")
        assert media_paths.url_to_path(url).is_file()

    @pytest.mark.asyncio
    async def test_output_is_bounded(self, store, media_paths, image_bytes):
        url = await store.save_image_bytes(image_bytes(size=(3000, 1500), fmt="JPEG"), RECIPE_ID)

        with Image.open(io.BytesIO(media_paths.url_to_path(url).read_bytes())) as img:
            assert img.size == (1280, 640)

    @pytest.mark.asyncio
    async def test_rejects_unknown_bytes(self, store, media_paths):
        with pytest.raises(UnsupportedFormatError):
            await store.save_image_bytes(b"plain text, not a picture " * 10, RECIPE_ID)
        assert not media_paths.recipe_dir(RECIPE_ID).exists()

    @pytest.mark.asyncio
    async def test_rejects_oversized_before_decoding(self, media_paths, image_bytes):
        store = LocalMediaStore(media_paths, limits=SizeLimits(image=200))
        with pytest.raises(PayloadTooLargeError):
            await store.save_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)

    @pytest.mark.asyncio
    async def test_rejects_invalid_owner_id(self, store, image_bytes):
        with pytest.raises(InvalidUrlError):
            await store.save_image_bytes(image_bytes(fmt="PNG"), "../../etc")

    @pytest.mark.asyncio
    async def test_save_refuses_video_kind(self, store, image_bytes):
        with pytest.raises(ValueError):
            await store.save(image_bytes(fmt="PNG"), RECIPE_ID, AssetKind.VIDEO)


class TestSaveVideo:
    @pytest.mark.asyncio
    async def test_sniffed_extension_wins(self, store, media_paths, ftyp_bytes):
        saved = await store.save_video_bytes(ftyp_bytes(b"qt  "), RECIPE_ID, original_ext=".mp4")

        assert re.match(rf"^/recipes/{RECIPE_ID}/video-\d+\.mov$", saved.url)
        assert media_paths.url_to_path(saved.url).is_file()

    @pytest.mark.asyncio
    async def test_allowed_original_extension_fallback(self, store):
        saved = await store.save_video_bytes(b"\x00" * 64, RECIPE_ID, original_ext="M4V", duration=3.5)

        assert saved.url.endswith(".m4v")
        assert saved.duration == 3.5

    @pytest.mark.asyncio
    async def test_unrecognized_video_rejected(self, store):
        with pytest.raises(UnsupportedFormatError):
            await store.save_video_bytes(b"\x00" * 64, RECIPE_ID, original_ext=".avi")

    @pytest.mark.asyncio
    async def test_video_size_limit(self, media_paths, ftyp_bytes):
        store = LocalMediaStore(media_paths, limits=SizeLimits(video=100))
        with pytest.raises(PayloadTooLargeError, match="Video too large"):
            await store.save_video_bytes(ftyp_bytes(b"isom"), RECIPE_ID)

    @pytest.mark.asyncio
    async def test_save_video_file_copies(self, store, media_paths, tmp_path):
        source = tmp_path / "converted.mp4"
        source.write_bytes(b"\x00" * 128)

        saved = await store.save_video_file(source, RECIPE_ID, duration=12.0)

        dest = media_paths.url_to_path(saved.url)
        assert dest.read_bytes() == source.read_bytes()
        assert source.exists()
        assert saved.duration == 12.0


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_image(self, store, media_paths, image_bytes):
        url = await store.save_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)

        await store.delete_image_by_url(url)

        assert not media_paths.url_to_path(url).exists()
        assert not await store.exists(url)

    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(self, store):
        with pytest.raises(MediaNotFoundError):
            await store.delete_image_by_url(f"/recipes/{RECIPE_ID}/{content_id(b'x')}.jpg")

    @pytest.mark.asyncio
    async def test_delete_with_wrong_kind_rejected(self, store, image_bytes):
        url = await store.save_step_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)
        with pytest.raises(InvalidUrlError):
            await store.delete_image_by_url(url)

    @pytest.mark.asyncio
    async def test_delete_by_url_any_kind(self, store, media_paths, ftyp_bytes):
        saved = await store.save_video_bytes(ftyp_bytes(b"isom"), RECIPE_ID)

        await store.delete_by_url(saved.url)

        assert not media_paths.url_to_path(saved.url).exists()

    @pytest.mark.asyncio
    async def test_delete_recipe_dir(self, store, media_paths, image_bytes):
        await store.save_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)
        await store.save_step_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)

        await store.delete_recipe_dir(RECIPE_ID)

        assert not media_paths.recipe_dir(RECIPE_ID).exists()

    @pytest.mark.asyncio
    async def test_delete_recipe_dir_never_raises(self, store):
        await store.delete_recipe_dir(RECIPE_ID)
        await store.delete_recipe_dir("not-an-id")

    @pytest.mark.asyncio
    async def test_delete_step_images_dir_keeps_gallery(self, store, media_paths, image_bytes):
        gallery_url = await store.save_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)
        await store.save_step_image_bytes(image_bytes(fmt="PNG"), RECIPE_ID)

        await store.delete_step_images_dir(RECIPE_ID)

        assert not media_paths.steps_dir(RECIPE_ID).exists()
        assert media_paths.url_to_path(gallery_url).is_file()


class TestFromConfig:
    def test_uses_config_values(self, tmp_path):
        config = MediaConfig(uploads_dir=str(tmp_path), max_image_file_size=42, max_width=10)
        store = LocalMediaStore.from_config(config)

        assert store.paths.root == tmp_path
        assert store.limits.image == 42
