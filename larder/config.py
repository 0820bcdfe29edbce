import os
import re
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early so env vars are available for YAML interpolation
_env_file = Path(__file__).parent.parent / ".env"
load_dotenv(_env_file)

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

MB = 1024 * 1024


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Location of app.yaml; ``LARDER_CONFIG`` overrides the working directory default."""
    override = os.environ.get("LARDER_CONFIG")
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./larder.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    pool_pre_ping: bool = True
    echo: bool = False
    create_all: bool = False


class MediaConfig(BaseModel):
    """Upload limits and image normalization settings."""

    uploads_dir: str = "./uploads"
    max_avatar_file_size: int = 5 * MB
    max_image_file_size: int = 10 * MB
    max_video_file_size: int = 100 * MB
    max_width: int = 1280
    max_height: int = 720
    jpeg_quality: int = 80
    heic_intermediate_quality: int = 90
    fetch_timeout: float = 30.0
    max_gallery_images: int = 10
    max_recipe_videos: int = 5

    @property
    def uploads_path(self) -> Path:
        return Path(self.uploads_dir)


class VideoConfig(BaseModel):
    """External video conversion settings."""

    ffmpeg_path: str | None = None
    preset: str = "fast"
    crf: int = 23
    audio_bitrate: str = "128k"
    temp_dir: str | None = None
    temp_max_age: int = 60 * 60


class LogfireConfig(BaseModel):
    """Pydantic Logfire tracing configuration."""

    enabled: bool = False
    service_name: str = "larder"
    environment: str | None = None
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debug: bool = False

    db: DatabaseConfig = DatabaseConfig()
    media: MediaConfig = MediaConfig()
    video: VideoConfig = VideoConfig()
    logfire: LogfireConfig = LogfireConfig()

    @property
    def video_temp_dir(self) -> Path:
        if self.video.temp_dir:
            return Path(self.video.temp_dir)
        return self.media.uploads_path / "video-temp"


_SECTIONS = {
    "db": DatabaseConfig,
    "media": MediaConfig,
    "video": VideoConfig,
    "logfire": LogfireConfig,
}


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    # YAML sections replace the env-derived defaults section by section
    updates = {}
    for name, model in _SECTIONS.items():
        if name in app_config:
            updates[name] = model(**app_config[name])

    if "debug" in app_config:
        updates["debug"] = bool(app_config["debug"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
