"""CLI commands for Larder."""

import asyncio
import logging
from pathlib import Path

import click

from larder.config import get_settings

LOG_LEVELS = click.Choice(["debug", "info", "warning", "error"])


def _run(coro):
    return asyncio.run(coro)


async def _with_session(settings, callback):
    """Open one database session for a maintenance command, then dispose the engine."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    engine = create_async_engine(settings.db.url, echo=settings.db.echo)
    try:
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            return await callback(session)
    finally:
        await engine.dispose()


@click.group()
@click.version_option(package_name="larder")
@click.option("--log-level", default="info", type=LOG_LEVELS, help="Logging level")
def cli(log_level):
    """Larder - recipe media ingestion and storage."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
def serve(host, port, reload, workers):
    """Run the media API server."""
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "larder.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = logging.getLevelName(logging.getLogger().level)
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from larder.asgi import app

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


@cli.command("init-db")
def init_db():
    """Create the recipe media tables if they do not exist."""
    from sqlalchemy.ext.asyncio import create_async_engine

    import larder.db.models  # noqa: F401
    from larder.db.base import Base

    settings = get_settings()

    async def create_tables():
        engine = create_async_engine(settings.db.url)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        finally:
            await engine.dispose()

    _run(create_tables())
    click.echo(f"Database tables ready at {settings.db.url}")


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report orphans without deleting them")
def sweep(dry_run):
    """Remove media files no recipe references."""
    from larder.db.services.media_service import reconcile_media
    from larder.lib.paths import MediaPaths

    settings = get_settings()
    paths = MediaPaths(settings.media.uploads_path)

    report = _run(_with_session(settings, lambda s: reconcile_media(s, paths, dry_run=dry_run)))

    verb = "Would remove" if dry_run else "Removed"
    click.echo(f"{verb} {len(report.removed_files)} file(s) and {len(report.removed_dirs)} directory(ies)")
    for url in report.missing_urls:
        click.echo(f"Missing: {url}")
    if report.errors:
        click.echo(f"{report.errors} error(s); see log for details", err=True)


@cli.command("migrate-layout")
def migrate_layout():
    """Move legacy image files into per-recipe directories and rewrite their URLs."""
    from larder.db.services.media_service import migrate_media_layout
    from larder.lib.paths import MediaPaths

    settings = get_settings()
    paths = MediaPaths(settings.media.uploads_path)

    report = _run(_with_session(settings, lambda s: migrate_media_layout(s, paths)))

    click.echo(f"Rewrote {len(report.rewrites)} URL(s), moved {report.moved_files} file(s)")
    for url in report.missing_files:
        click.echo(f"Missing: {url}")
    if report.errors:
        click.echo(f"{report.errors} error(s); see log for details", err=True)


@cli.command("clean-temp")
@click.option("--max-age", default=None, type=int, help="Age in seconds (default from config)")
def clean_temp(max_age):
    """Delete stale files from the video working directory."""
    from larder.lib.reconcile import cleanup_old_temp_files

    settings = get_settings()
    age = max_age if max_age is not None else settings.video.temp_max_age
    removed = _run(cleanup_old_temp_files(settings.video_temp_dir, age))
    click.echo(f"Removed {removed} temporary file(s) from {settings.video_temp_dir}")


@cli.command("import-media")
@click.argument("recipe_id", type=click.UUID)
@click.option("--image", "images", multiple=True, help="Remote image URL (repeatable)")
@click.option(
    "--video",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Downloaded video file; it is removed once imported",
)
@click.option("--duration", type=float, default=None, help="Video duration in seconds")
def import_media(recipe_id, images, video, duration):
    """Import remote images and a downloaded video for a new recipe."""
    from larder.lib.ingest import MediaImporter
    from larder.lib.storage import LocalMediaStore

    settings = get_settings()
    importer = MediaImporter.from_settings(settings, LocalMediaStore.from_config(settings.media))
    imported = _run(
        importer.import_recipe_media(
            str(recipe_id), image_field=list(images), video_path=video, duration=duration
        )
    )

    for url in imported.images:
        click.echo(url)
    if imported.video is not None:
        click.echo(f"{imported.video.url} ({imported.conversion.value})")
    elif video is not None:
        click.echo("Video could not be stored; see log for details", err=True)
    if images and not imported.images:
        click.echo("No images could be downloaded", err=True)


@cli.command("convert-video")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def convert_video(path):
    """Convert a video file to MP4 in place (remux, then transcode)."""
    from larder.lib.video import TranscodeSettings, convert_to_mp4, resolve_ffmpeg_path

    settings = get_settings()
    ffmpeg_path = resolve_ffmpeg_path(settings.video.ffmpeg_path)
    result = _run(
        convert_to_mp4(path, ffmpeg_path, TranscodeSettings.from_config(settings.video))
    )

    click.echo(f"{result.file_path} ({result.method.value})")
    if result.degraded:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
