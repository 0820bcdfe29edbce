"""Mapping between stored media files and their public URLs.

Canonical layout under the uploads root::

    recipes/{recipeId}/{hash}.jpg            /recipes/{recipeId}/{hash}.jpg
    recipes/{recipeId}/steps/{hash}.jpg      /recipes/{recipeId}/steps/{hash}.jpg
    recipes/{recipeId}/video-{ms}.{ext}      /recipes/{recipeId}/video-{ms}.{ext}
    avatars/{userId}/{hash}.jpg              /avatars/{userId}/{hash}.jpg

Two historical layouts are still recognized so they can be served and
migrated, but are never produced for new writes::

    recipes/images/{filename}                /recipes/images/{filename}
    recipes/{recipeId}/gallery/{filename}    /recipes/{recipeId}/gallery/{filename}
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from larder.lib.errors import InvalidUrlError

RECIPES_DIR = "recipes"
AVATARS_DIR = "avatars"
STEPS_DIR = "steps"
LEGACY_IMAGES_DIR = "images"
LEGACY_GALLERY_DIR = "gallery"

ENTITY_ID_RE = re.compile(r"^[a-f0-9-]{36}$", re.IGNORECASE)
FILENAME_RE = re.compile(r"^[a-zA-Z0-9_-]+\.[a-zA-Z0-9]+$")
VIDEO_FILENAME_RE = re.compile(r"^video-\d+\.[a-zA-Z0-9]+$")


class AssetKind(str, Enum):
    IMAGE = "image"
    STEP_IMAGE = "step_image"
    VIDEO = "video"
    AVATAR = "avatar"


_URL_PATTERNS: dict[AssetKind, re.Pattern[str]] = {
    AssetKind.IMAGE: re.compile(r"^/recipes/([a-f0-9-]+)/([^/]+)$", re.IGNORECASE),
    AssetKind.STEP_IMAGE: re.compile(r"^/recipes/([a-f0-9-]+)/steps/([^/]+)$", re.IGNORECASE),
    AssetKind.VIDEO: re.compile(r"^/recipes/([a-f0-9-]+)/(video-[^/]+)$", re.IGNORECASE),
    AssetKind.AVATAR: re.compile(r"^/avatars/([a-f0-9-]+)/([^/]+)$", re.IGNORECASE),
}

# Most specific first; plain images would otherwise swallow video URLs.
_MATCH_ORDER = (AssetKind.VIDEO, AssetKind.STEP_IMAGE, AssetKind.IMAGE, AssetKind.AVATAR)

LEGACY_FLAT_RE = re.compile(r"^/recipes/images/([^/]+)$")
LEGACY_GALLERY_RE = re.compile(r"^/recipes/([a-f0-9-]+)/gallery/([^/]+)$", re.IGNORECASE)


@dataclass(frozen=True)
class AssetRef:
    """A stored file identified by its owner, name, and kind."""

    entity_id: str
    filename: str
    kind: AssetKind


class LegacyLayout(str, Enum):
    FLAT = "flat"
    GALLERY = "gallery"


@dataclass(frozen=True)
class LegacyRef:
    layout: LegacyLayout
    filename: str
    entity_id: str | None = None


def validate_entity_id(entity_id: str) -> str:
    if not ENTITY_ID_RE.match(entity_id or ""):
        raise InvalidUrlError(f"Invalid entity ID: {entity_id!r}")
    return entity_id


def validate_filename(filename: str, kind: AssetKind = AssetKind.IMAGE) -> str:
    pattern = VIDEO_FILENAME_RE if kind is AssetKind.VIDEO else FILENAME_RE
    if not pattern.match(filename or ""):
        raise InvalidUrlError(f"Invalid {kind.value} filename: {filename!r}")
    return filename


def url_for(ref: AssetRef) -> str:
    if ref.kind is AssetKind.AVATAR:
        return f"/{AVATARS_DIR}/{ref.entity_id}/{ref.filename}"
    if ref.kind is AssetKind.STEP_IMAGE:
        return f"/{RECIPES_DIR}/{ref.entity_id}/{STEPS_DIR}/{ref.filename}"
    return f"/{RECIPES_DIR}/{ref.entity_id}/{ref.filename}"


def parse_url(url: str, kind: AssetKind) -> AssetRef:
    """Parse a canonical URL of the given kind, validating every component.

    Raises:
        InvalidUrlError: The URL does not have the canonical shape for *kind*,
            or its id or filename fail validation.
    """
    match = _URL_PATTERNS[kind].match(url or "")
    if not match:
        raise InvalidUrlError(f"Invalid {kind.value} URL format: {url!r}")

    entity_id, filename = match.groups()
    validate_entity_id(entity_id)
    validate_filename(filename, kind)
    return AssetRef(entity_id=entity_id, filename=filename, kind=kind)


def match_url(url: str) -> AssetRef:
    """Parse a canonical URL of any kind."""
    for kind in _MATCH_ORDER:
        if _URL_PATTERNS[kind].match(url or ""):
            return parse_url(url, kind)
    raise InvalidUrlError(f"Unrecognized media URL: {url!r}")


def parse_legacy_url(url: str) -> LegacyRef | None:
    """Return the legacy reference for *url*, or ``None`` for any other shape."""
    if match := LEGACY_FLAT_RE.match(url or ""):
        return LegacyRef(layout=LegacyLayout.FLAT, filename=match.group(1))
    if match := LEGACY_GALLERY_RE.match(url or ""):
        entity_id, filename = match.groups()
        return LegacyRef(layout=LegacyLayout.GALLERY, filename=filename, entity_id=entity_id)
    return None


def is_legacy_url(url: str) -> bool:
    return parse_legacy_url(url) is not None


def canonical_url_for_legacy(url: str, owner_id: str | None = None) -> str:
    """Rewrite a legacy URL into the canonical per-recipe shape.

    Flat ``/recipes/images/`` URLs carry no recipe id, so the owner must be
    supplied by the caller (usually from a database lookup).
    """
    legacy = parse_legacy_url(url)
    if legacy is None:
        raise InvalidUrlError(f"Not a legacy media URL: {url!r}")

    entity_id = legacy.entity_id or owner_id
    if entity_id is None:
        raise InvalidUrlError(f"Owner required to migrate {url!r}")

    ref = AssetRef(
        entity_id=validate_entity_id(entity_id),
        filename=validate_filename(legacy.filename),
        kind=AssetKind.IMAGE,
    )
    return url_for(ref)


class MediaPaths:
    """Resolve URLs and refs to locations below an uploads root."""

    def __init__(self, uploads_root: Path) -> None:
        self._root = Path(uploads_root)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def recipes_root(self) -> Path:
        return self._root / RECIPES_DIR

    @property
    def legacy_images_dir(self) -> Path:
        return self.recipes_root / LEGACY_IMAGES_DIR

    def recipe_dir(self, recipe_id: str) -> Path:
        return self.recipes_root / validate_entity_id(recipe_id)

    def steps_dir(self, recipe_id: str) -> Path:
        return self.recipe_dir(recipe_id) / STEPS_DIR

    def directory_for(self, entity_id: str, kind: AssetKind) -> Path:
        if kind is AssetKind.AVATAR:
            return self._root / AVATARS_DIR / validate_entity_id(entity_id)
        if kind is AssetKind.STEP_IMAGE:
            return self.steps_dir(entity_id)
        return self.recipe_dir(entity_id)

    def path_for(self, ref: AssetRef) -> Path:
        validate_filename(ref.filename, ref.kind)
        return self.directory_for(ref.entity_id, ref.kind) / ref.filename

    def relative_path(self, ref: AssetRef) -> str:
        return self.path_for(ref).relative_to(self._root).as_posix()

    def url_to_path(self, url: str) -> Path:
        return self.path_for(match_url(url))

    def legacy_path_for(self, legacy: LegacyRef) -> Path:
        validate_filename(legacy.filename)
        if legacy.layout is LegacyLayout.FLAT:
            return self.legacy_images_dir / legacy.filename
        return self.recipe_dir(legacy.entity_id) / LEGACY_GALLERY_DIR / legacy.filename

    def resolve_readable(self, url: str) -> Path:
        """Map any servable URL (canonical or legacy) to its on-disk path."""
        legacy = parse_legacy_url(url)
        if legacy is not None:
            return self.legacy_path_for(legacy)
        return self.url_to_path(url)
