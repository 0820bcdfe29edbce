"""ASGI application factory for Larder."""

import logging

from advanced_alchemy.extensions.litestar import SQLAlchemyPlugin
from litestar import Litestar

from larder.app_config import build_db_config, request_body_limit
from larder.config import Settings, get_settings
from larder.controllers.media import MediaController
from larder.lib import observability
from larder.lib.exceptions import EXCEPTION_HANDLERS
from larder.lib.fetch import ImageDownloader
from larder.lib.reconcile import cleanup_old_temp_files
from larder.lib.storage import LocalMediaStore
from larder.middleware.media_files import MediaFilesMiddleware

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None):
    """Build the Litestar app wrapped in the media file middleware."""
    settings = settings or get_settings()
    observability.configure(settings)
    observability.instrument_httpx()

    async def on_startup() -> None:
        removed = await cleanup_old_temp_files(settings.video_temp_dir, settings.video.temp_max_age)
        logger.info("Startup temp cleanup removed %d file(s)", removed)

    app = Litestar(
        on_startup=[on_startup],
        route_handlers=[MediaController],
        plugins=[SQLAlchemyPlugin(config=build_db_config(settings))],
        exception_handlers=EXCEPTION_HANDLERS,
        request_max_body_size=request_body_limit(settings.media),
        debug=settings.debug,
    )
    app.state.settings = settings
    store = LocalMediaStore.from_config(settings.media)
    app.state.media_store = store
    app.state.image_downloader = ImageDownloader.from_config(store, settings.media)

    return MediaFilesMiddleware(
        observability.instrument_app(app),
        uploads_root=settings.media.uploads_path,
    )


app = create_app()
