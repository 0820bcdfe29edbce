"""Application configuration helpers for Larder.

Database and middleware configuration live here so ``asgi.py`` only wires
the pieces together.
"""

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import AsyncSessionConfig, SQLAlchemyAsyncConfig

from larder.config import MediaConfig, Settings
from larder.db.base import Base

# Room for multipart boundaries and the small form fields next to the file
MULTIPART_OVERHEAD = 64 * 1024


def build_engine_config(settings: Settings) -> EngineConfig:
    if "sqlite" in settings.db.url:
        return EngineConfig(echo=settings.db.echo)
    return EngineConfig(
        pool_size=settings.db.pool_size,
        max_overflow=settings.db.pool_overflow,
        pool_timeout=settings.db.pool_timeout,
        pool_pre_ping=settings.db.pool_pre_ping,
        echo=settings.db.echo,
    )


def build_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    """Build the SQLAlchemy async database configuration."""
    return SQLAlchemyAsyncConfig(
        connection_string=settings.db.url,
        metadata=Base.metadata,
        create_all=settings.db.create_all,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=build_engine_config(settings),
    )


def request_body_limit(media: MediaConfig) -> int:
    """Largest upload ceiling plus multipart framing.

    The per-category ceilings are enforced by the media store with their own
    messages; the request cap only has to let the largest of them through.
    """
    largest = max(media.max_avatar_file_size, media.max_image_file_size, media.max_video_file_size)
    return largest + MULTIPART_OVERHEAD
