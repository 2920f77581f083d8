# studyprep/services/storage.py
"""
File storage for avatars and uploaded assets.

Contract: take a byte buffer and a storage path, return a publicly resolvable URL plus the
path token that identifies the object later (`StoredObject`).
"""
from __future__ import annotations

import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from studyprep.config import get_bucket, settings

logger = logging.getLogger("studyprep.storage")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_FOLDER_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+(/[a-zA-Z0-9_-]+)*$")

SIGNED_URL_TTL_SECONDS = 3600 * 24 * 365 * 10


@dataclass(frozen=True)
class StoredObject:
    url: str
    path: str


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name or "") or "file"


def is_valid_folder(folder: str) -> bool:
    return bool(_FOLDER_PATTERN.fullmatch(folder or ""))


def file_extension(name: Optional[str], default: str = "jpg") -> str:
    if name and "." in name:
        ext = name.rsplit(".", 1)[1]
        if ext and _UNSAFE_CHARS.search(ext) is None:
            return ext.lower()
    return default


def timestamp_ms() -> int:
    return int(time.time() * 1000)


class StorageBackend(ABC):

    @abstractmethod
    def upload(self, data: bytes, path: str, content_type: Optional[str] = None) -> StoredObject:
        """Store `data` at `path` and return where it can be fetched."""


class FirebaseStorage(StorageBackend):
    """Objects in the default Firebase Storage bucket."""

    def __init__(self, bucket=None) -> None:
        self._bucket = bucket or get_bucket()

    def upload(self, data: bytes, path: str, content_type: Optional[str] = None) -> StoredObject:
        blob = self._bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        # Public URL or a long-lived signed URL
        try:
            blob.make_public()
            url = blob.public_url
        except Exception as exc:
            logger.info("make_public failed for %s (%s), using a signed URL", path, exc)
            url = blob.generate_signed_url(expiration=SIGNED_URL_TTL_SECONDS)
        return StoredObject(url=url, path=path)


class LocalStorage(StorageBackend):
    """Files under `UPLOADS_DIR`, served from `UPLOADS_BASE_URL`."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self._root = os.path.abspath(root or settings.uploads_dir)
        self._base_url = (base_url or settings.uploads_base_url).rstrip("/")

    def upload(self, data: bytes, path: str, content_type: Optional[str] = None) -> StoredObject:
        target = os.path.abspath(os.path.join(self._root, path))
        if os.path.commonpath([self._root, target]) != self._root:
            raise ValueError(f"Storage path escapes the uploads directory: {path!r}")
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as fh:
            fh.write(data)
        return StoredObject(url=f"{self._base_url}/{path}", path=path)


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    """Backend selected by `STORAGE_BACKEND`."""
    if settings.storage_backend == "local":
        return LocalStorage()
    return FirebaseStorage()
