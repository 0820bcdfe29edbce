"""Maintenance sweeps that keep the uploads tree consistent with the database.

Every sweep here is best effort: failures on single files are logged and
counted, and never abort the rest of the sweep.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from larder.lib import observability
from larder.lib.errors import InvalidUrlError
from larder.lib.paths import (
    ENTITY_ID_RE,
    LEGACY_GALLERY_DIR,
    LEGACY_IMAGES_DIR,
    STEPS_DIR,
    AssetKind,
    AssetRef,
    MediaPaths,
    canonical_url_for_legacy,
    match_url,
    parse_legacy_url,
    url_for,
)

logger = logging.getLogger(__name__)

# Left to migrate_legacy_layout rather than swept.
_LEGACY_DIRS = {LEGACY_GALLERY_DIR}


@dataclass
class SweepReport:
    removed_files: list[Path] = field(default_factory=list)
    removed_dirs: list[Path] = field(default_factory=list)
    missing_urls: list[str] = field(default_factory=list)
    errors: int = 0


@dataclass(frozen=True)
class LegacyReference:
    """A stored URL plus the recipe that owns the row holding it."""

    url: str
    owner_id: str


@dataclass
class MigrationReport:
    rewrites: dict[str, str] = field(default_factory=dict)
    moved_files: int = 0
    missing_files: list[str] = field(default_factory=list)
    errors: int = 0


def _remove_file(path: Path, report: SweepReport, dry_run: bool) -> None:
    try:
        if not dry_run:
            path.unlink()
        report.removed_files.append(path)
        logger.info("Removed orphaned media file %s", path)
    except OSError:
        report.errors += 1
        logger.warning("Could not remove orphaned media file %s", path, exc_info=True)


def _remove_dir(path: Path, report: SweepReport, dry_run: bool) -> None:
    try:
        if not dry_run:
            shutil.rmtree(path)
        report.removed_dirs.append(path)
        logger.info("Removed media directory of deleted recipe %s", path)
    except OSError:
        report.errors += 1
        logger.warning("Could not remove media directory %s", path, exc_info=True)


def _remove_if_empty(path: Path) -> bool:
    try:
        path.rmdir()
    except OSError:
        return False
    logger.info("Removed empty directory %s", path)
    return True


def _sweep_recipe_dir(
    recipe_dir: Path,
    recipe_id: str,
    referenced: set[str],
    report: SweepReport,
    dry_run: bool,
) -> None:
    for entry in sorted(recipe_dir.iterdir()):
        if entry.is_dir():
            if entry.name == STEPS_DIR:
                for step_file in sorted(entry.iterdir()):
                    if not step_file.is_file():
                        continue
                    ref = AssetRef(recipe_id, step_file.name, AssetKind.STEP_IMAGE)
                    if url_for(ref) not in referenced:
                        _remove_file(step_file, report, dry_run)
            elif entry.name not in _LEGACY_DIRS:
                logger.debug("Skipping unexpected directory %s", entry)
            continue

        ref = AssetRef(recipe_id, entry.name, AssetKind.IMAGE)
        if url_for(ref) not in referenced:
            _remove_file(entry, report, dry_run)


def _sweep(
    paths: MediaPaths,
    referenced: set[str],
    existing_ids: set[str],
    dry_run: bool,
) -> SweepReport:
    report = SweepReport()
    recipes_root = paths.recipes_root
    if not recipes_root.is_dir():
        return report

    for entry in sorted(recipes_root.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name == LEGACY_IMAGES_DIR:
            if not dry_run:
                _remove_if_empty(entry)
            continue
        if not ENTITY_ID_RE.match(entry.name):
            logger.debug("Skipping non-recipe directory %s", entry)
            continue

        recipe_id = entry.name.lower()
        if recipe_id not in existing_ids:
            _remove_dir(entry, report, dry_run)
            continue

        try:
            _sweep_recipe_dir(entry, recipe_id, referenced, report, dry_run)
        except OSError:
            report.errors += 1
            logger.warning("Could not scan media directory %s", entry, exc_info=True)

    for url in sorted(referenced):
        try:
            path = paths.path_for(match_url(url))
        except InvalidUrlError:
            continue
        if not path.is_file():
            report.missing_urls.append(url)
            logger.warning("Referenced media file is missing: %s", url)

    return report


async def sweep_orphans(
    paths: MediaPaths,
    referenced_urls: Iterable[str],
    existing_entity_ids: Iterable[str],
    dry_run: bool = False,
) -> SweepReport:
    """Remove stored files that no database row references.

    Directories belonging to recipes that no longer exist are removed whole.
    Referenced canonical URLs whose file is gone are reported, not repaired.
    """
    referenced = set(referenced_urls)
    existing_ids = {entity_id.lower() for entity_id in existing_entity_ids}

    with observability.span("media.sweep_orphans", dry_run=dry_run):
        report = await asyncio.to_thread(_sweep, paths, referenced, existing_ids, dry_run)

    logger.info(
        "Orphan sweep finished: %d files, %d directories removed, %d missing, %d errors",
        len(report.removed_files),
        len(report.removed_dirs),
        len(report.missing_urls),
        report.errors,
    )
    return report


def _migrate(paths: MediaPaths, references: list[LegacyReference]) -> MigrationReport:
    report = MigrationReport()
    touched_dirs: set[Path] = set()

    for reference in references:
        legacy = parse_legacy_url(reference.url)
        if legacy is None:
            continue
        try:
            new_url = canonical_url_for_legacy(reference.url, owner_id=reference.owner_id)
            source = paths.legacy_path_for(legacy)
            target = paths.url_to_path(new_url)
        except InvalidUrlError:
            report.errors += 1
            logger.warning("Cannot migrate malformed legacy URL %s", reference.url)
            continue

        try:
            if source.is_file() and not target.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(source, target)
                report.moved_files += 1
            elif not target.exists():
                report.missing_files.append(reference.url)
                logger.warning("Legacy media file is missing: %s", source)
        except OSError:
            report.errors += 1
            logger.warning("Could not move %s to %s", source, target, exc_info=True)
            continue

        touched_dirs.add(source.parent)
        report.rewrites[reference.url] = new_url

    # Nested gallery dirs first, then the flat images dir
    for directory in sorted(touched_dirs, key=lambda p: len(p.parts), reverse=True):
        _remove_if_empty(directory)

    return report


async def migrate_legacy_layout(
    paths: MediaPaths,
    references: Iterable[LegacyReference],
) -> MigrationReport:
    """Move files referenced by legacy URLs into the canonical per-recipe layout.

    Returns the old-to-new URL map the caller must write back to the database.
    A reference whose file is already at its canonical location is still
    rewritten.
    """
    with observability.span("media.migrate_legacy_layout"):
        report = await asyncio.to_thread(_migrate, paths, list(references))
    logger.info(
        "Legacy layout migration finished: %d URLs rewritten, %d files moved, %d errors",
        len(report.rewrites),
        report.moved_files,
        report.errors,
    )
    return report


async def cleanup_file(path: Path) -> None:
    """Remove a temporary file, ignoring a missing one."""
    await asyncio.to_thread(Path(path).unlink, True)


def _cleanup_old(temp_dir: Path, max_age: float) -> int:
    temp_dir.mkdir(parents=True, exist_ok=True)
    now = time.time()
    removed = 0
    for entry in temp_dir.iterdir():
        try:
            stats = entry.stat()
            if not entry.is_file():
                continue
            if now - stats.st_mtime > max_age:
                entry.unlink()
                removed += 1
        except OSError:
            logger.warning("Failed to process temporary file %s", entry, exc_info=True)
    return removed


async def cleanup_old_temp_files(temp_dir: Path, max_age: float = 60 * 60) -> int:
    """Delete files in *temp_dir* older than *max_age* seconds. Never raises."""
    try:
        removed = await asyncio.to_thread(_cleanup_old, Path(temp_dir), max_age)
    except OSError:
        logger.error("Failed to clean up temporary files in %s", temp_dir, exc_info=True)
        return 0
    if removed:
        logger.info("Removed %d old temporary file(s)", removed)
    return removed
