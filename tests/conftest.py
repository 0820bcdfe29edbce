"""Shared pytest fixtures."""

import io
import os
from unittest.mock import patch

import pytest
import yaml
from PIL import Image

from larder.config import get_settings
from larder.lib.paths import MediaPaths
from larder.lib.storage import LocalMediaStore


def make_image_bytes(size=(64, 48), fmt="PNG", mode="RGB", **save_kwargs) -> bytes:
    """Encode a noisy image so even small sizes produce realistic buffers."""
    channels = len(mode)
    img = Image.frombytes(mode, size, os.urandom(size[0] * size[1] * channels))
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def ftyp_header(brand: bytes, length: int = 200) -> bytes:
    """An ISO base media buffer with the given major brand, padded to *length*."""
    head = b"\x00\x00\x00\x18ftyp" + brand + b"\x00\x00\x00\x00"
    return head + b"\x00" * (length - len(head))


@pytest.fixture
def image_bytes():
    return make_image_bytes


@pytest.fixture
def ftyp_bytes():
    return ftyp_header


@pytest.fixture
def media_paths(tmp_path):
    return MediaPaths(tmp_path / "uploads")


@pytest.fixture
def store(media_paths):
    return LocalMediaStore(media_paths)


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Point get_settings() at a temporary app.yaml."""
    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("larder.config.get_config_path", return_value=config_path)
        return patcher.start(), patcher

    return _mock


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
