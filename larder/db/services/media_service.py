"""Database side of the media pipeline: references, video rows, reconciliation."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from larder.db.models import Recipe, RecipeImage, RecipeStep, RecipeVideo
from larder.lib.paths import MediaPaths, is_legacy_url
from larder.lib.reconcile import (
    LegacyReference,
    MigrationReport,
    SweepReport,
    migrate_legacy_layout,
    sweep_orphans,
)

# (model, URL column) pairs that hold stored media URLs
_URL_COLUMNS = (
    (Recipe, Recipe.image),
    (RecipeStep, RecipeStep.image),
    (RecipeImage, RecipeImage.image),
    (RecipeVideo, RecipeVideo.video),
    (RecipeVideo, RecipeVideo.thumbnail),
)


def _owner_column(model):
    return model.id if model is Recipe else model.recipe_id


async def recipe_exists(db_session: AsyncSession, recipe_id: UUID | str) -> bool:
    result = await db_session.execute(
        select(Recipe.id).where(Recipe.id == UUID(str(recipe_id)))
    )
    return result.scalar_one_or_none() is not None


async def list_recipe_ids(db_session: AsyncSession) -> set[str]:
    result = await db_session.execute(select(Recipe.id))
    return {str(recipe_id) for recipe_id in result.scalars().all()}


async def collect_referenced_urls(db_session: AsyncSession) -> set[str]:
    """Every media URL stored anywhere in the recipe tables."""
    urls: set[str] = set()
    for _, column in _URL_COLUMNS:
        result = await db_session.execute(select(column).where(column.is_not(None)))
        urls.update(url for url in result.scalars().all() if url)
    return urls


async def find_legacy_references(db_session: AsyncSession) -> list[LegacyReference]:
    """Legacy-layout URLs paired with the recipe that owns each row."""
    references: list[LegacyReference] = []
    for model, column in _URL_COLUMNS:
        owner = _owner_column(model)
        result = await db_session.execute(
            select(column, owner).where(column.like("/recipes/%"))
        )
        for url, owner_id in result.all():
            if url and is_legacy_url(url):
                references.append(LegacyReference(url=url, owner_id=str(owner_id)))
    return references


async def apply_url_rewrites(db_session: AsyncSession, rewrites: dict[str, str]) -> int:
    """Replace old URLs with new ones in every media column. Returns rows changed."""
    changed = 0
    for old_url, new_url in rewrites.items():
        for model, column in _URL_COLUMNS:
            result = await db_session.execute(
                update(model).where(column == old_url).values({column.key: new_url})
            )
            changed += result.rowcount or 0
    if changed:
        await db_session.commit()
    return changed


async def add_recipe_images(
    db_session: AsyncSession, recipe_id: UUID | str, urls: list[str]
) -> list[RecipeImage]:
    """Append gallery images after the recipe's existing ones."""
    recipe_uuid = UUID(str(recipe_id))
    result = await db_session.execute(
        select(func.count()).select_from(RecipeImage).where(RecipeImage.recipe_id == recipe_uuid)
    )
    start = result.scalar() or 0

    records = [
        RecipeImage(recipe_id=recipe_uuid, image=url, order=start + offset)
        for offset, url in enumerate(urls)
    ]
    db_session.add_all(records)
    await db_session.commit()
    return records


async def count_recipe_videos(db_session: AsyncSession, recipe_id: UUID | str) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(RecipeVideo).where(
            RecipeVideo.recipe_id == UUID(str(recipe_id))
        )
    )
    return result.scalar() or 0


async def add_recipe_video(
    db_session: AsyncSession,
    recipe_id: UUID | str,
    video: str,
    duration: float | None = None,
    order: int = 0,
    thumbnail: str | None = None,
) -> RecipeVideo:
    record = RecipeVideo(
        recipe_id=UUID(str(recipe_id)),
        video=video,
        duration=duration,
        order=order,
        thumbnail=thumbnail,
    )
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)
    return record


async def get_recipe_video(db_session: AsyncSession, video_id: UUID) -> RecipeVideo | None:
    result = await db_session.execute(select(RecipeVideo).where(RecipeVideo.id == video_id))
    return result.scalar_one_or_none()


async def delete_recipe_video(db_session: AsyncSession, video_id: UUID) -> bool:
    record = await get_recipe_video(db_session, video_id)
    if record is None:
        return False
    await db_session.delete(record)
    await db_session.commit()
    return True


async def reconcile_media(
    db_session: AsyncSession,
    paths: MediaPaths,
    dry_run: bool = False,
) -> SweepReport:
    """Run the orphan sweep against the current database contents."""
    referenced = await collect_referenced_urls(db_session)
    existing = await list_recipe_ids(db_session)
    return await sweep_orphans(paths, referenced, existing, dry_run=dry_run)


async def migrate_media_layout(db_session: AsyncSession, paths: MediaPaths) -> MigrationReport:
    """Move legacy files into per-recipe directories and rewrite their URLs."""
    references = await find_legacy_references(db_session)
    report = await migrate_legacy_layout(paths, references)
    await apply_url_rewrites(db_session, report.rewrites)
    return report
