"""Remote image download and JSON-LD image candidate selection."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from larder.lib.errors import DownloadFailedError, InvalidUrlError, MediaError
from larder.lib.paths import AssetKind
from larder.lib.storage import LocalMediaStore

logger = logging.getLogger(__name__)


class ImageCandidate(BaseModel):
    """A possible recipe image: an absolute URL with optional dimensions."""

    url: str
    width: float | None = None
    height: float | None = None

    @property
    def area(self) -> float | None:
        if self.width and self.height:
            return self.width * self.height
        return None


class _ImageObject(BaseModel):
    """``ImageObject``-like JSON-LD node."""

    model_config = ConfigDict(extra="ignore")

    url: str = Field(validation_alias=AliasChoices("url", "contentUrl", "@id", "src"))
    width: float | None = None
    height: float | None = None

    @field_validator("url", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, list) and value:
            value = value[0]
        return value

    @field_validator("width", "height", mode="before")
    @classmethod
    def _lenient_number(cls, value: Any) -> Any:
        # "800px" or "" should not discard the whole candidate
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        try:
            return float(str(value).strip().removesuffix("px"))
        except (TypeError, ValueError):
            return None


def absolute_http_url(value: str) -> str | None:
    """Return *value* normalized if it is an absolute http(s) URL, else ``None``."""
    try:
        url = httpx.URL(value.strip())
    except (httpx.InvalidURL, TypeError):
        return None
    if url.scheme not in ("http", "https") or not url.host:
        return None
    return str(url)


def _to_candidate(node: Any) -> ImageCandidate | None:
    if isinstance(node, str):
        url = absolute_http_url(node)
        return ImageCandidate(url=url) if url else None

    if isinstance(node, dict):
        try:
            obj = _ImageObject.model_validate(node)
        except ValidationError:
            return None
        url = absolute_http_url(obj.url)
        if url is None:
            return None
        return ImageCandidate(url=url, width=obj.width, height=obj.height)

    return None


def parse_image_candidates(field: Any) -> list[ImageCandidate]:
    """Normalize a JSON-LD ``image`` field into unique, valid candidates."""
    if not field:
        return []

    items = field if isinstance(field, list) else [field]
    seen: set[str] = set()
    candidates: list[ImageCandidate] = []
    for item in items:
        if item is None or item == "":
            continue
        candidate = _to_candidate(item)
        if candidate is None or candidate.url in seen:
            continue
        seen.add(candidate.url)
        candidates.append(candidate)
    return candidates


def rank_candidates(candidates: list[ImageCandidate]) -> list[ImageCandidate]:
    """Largest known area first; candidates without dimensions keep their order at the end."""
    sized = sorted((c for c in candidates if c.area), key=lambda c: c.area, reverse=True)
    unsized = [c for c in candidates if not c.area]
    return sized + unsized


class ImageDownloader:
    """Fetch remote images and hand them to the media store."""

    def __init__(
        self,
        store: LocalMediaStore,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(
        cls, store: LocalMediaStore, config, client: httpx.AsyncClient | None = None
    ) -> ImageDownloader:
        return cls(store, timeout=config.fetch_timeout, client=client)

    async def download_image(self, url: str, recipe_id: str) -> str:
        """Download *url* and store it as a recipe image; returns the stored URL.

        Raises:
            InvalidUrlError: *url* is not an absolute http(s) URL.
            DownloadFailedError: Timeout, non-2xx status, or non-image content type.
            PayloadTooLargeError: The image exceeds the image size ceiling.
        """
        if absolute_http_url(url) is None:
            raise InvalidUrlError(f"Invalid URL: {url}")

        if self._client is not None:
            data, content_type = await self._fetch(self._client, url)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                data, content_type = await self._fetch(client, url)

        asset = await self._store.save(
            data, recipe_id, AssetKind.IMAGE, content_type=content_type, source_url=url
        )
        return asset.url

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> tuple[bytes, str | None]:
        limits = self._store.limits
        try:
            async with client.stream("GET", url, timeout=self._timeout) as response:
                if not response.is_success:
                    raise DownloadFailedError(
                        f"Failed to download image: {response.status_code} {response.reason_phrase}"
                    )

                content_type = response.headers.get("content-type")
                if content_type and not content_type.startswith("image/"):
                    raise DownloadFailedError(
                        f"URL does not return an image (content-type: {content_type})"
                    )

                content_length = response.headers.get("content-length")
                if content_length and content_length.isdigit():
                    limits.check(AssetKind.IMAGE, int(content_length))

                chunks = bytearray()
                async for chunk in response.aiter_bytes():
                    chunks.extend(chunk)
                    limits.check(AssetKind.IMAGE, len(chunks))
        except httpx.TimeoutException as exc:
            raise DownloadFailedError(
                f"Request timeout after {int(self._timeout * 1000)}ms"
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadFailedError(f"Failed to download image: {exc}") from exc

        return bytes(chunks), content_type

    async def download_all_images(
        self,
        field: Any,
        recipe_id: str,
        max_images: int = 10,
    ) -> list[str]:
        """Download up to *max_images* candidates, largest first, skipping failures."""
        stored: list[str] = []
        for candidate in rank_candidates(parse_image_candidates(field)):
            if len(stored) >= max_images:
                break
            try:
                stored.append(await self.download_image(candidate.url, recipe_id))
            except MediaError as exc:
                logger.debug("Failed to download image %s, trying next: %s", candidate.url, exc)
        return stored

    async def download_best_image(self, field: Any, recipe_id: str) -> str | None:
        """Store the first candidate that downloads successfully."""
        stored = await self.download_all_images(field, recipe_id, max_images=1)
        return stored[0] if stored else None
