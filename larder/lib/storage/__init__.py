"""Content-addressed media storage."""

from larder.lib.storage.base import SavedVideo, SizeLimits, StoredAsset, content_id
from larder.lib.storage.local import LocalMediaStore

__all__ = ["LocalMediaStore", "SavedVideo", "SizeLimits", "StoredAsset", "content_id"]
