"""Object storage for images embedded in entry bodies."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from ..config import StorageConfig, load_settings
from ..domain.entries.images import extract_object_path
from .logging import get_logger

__all__ = [
    "ImageStore",
    "InMemoryImageStore",
    "LocalImageStore",
    "ObjectStoreError",
    "build_image_store",
    "build_object_path",
    "owned_object_paths",
]

logger = get_logger(__name__)

DEFAULT_OWNER = "anonymous"


class ObjectStoreError(RuntimeError):
    """Raised when the backing store cannot write or remove an object."""


class ImageStore(Protocol):  # pragma: no cover - interface only
    bucket: str

    def upload(
        self,
        data: bytes,
        owner_id: str,
        *,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str: ...

    def delete_paths(self, paths: Sequence[str]) -> int: ...

    def public_url(self, path: str) -> str: ...


def build_object_path(owner_id: str, filename: str) -> str:
    """``<owner>/<millis>_<random>.<ext>`` with a lowercased extension."""

    ext = (filename.rsplit(".", 1)[-1] if "." in filename else "bin").lower() or "bin"
    owner = owner_id or DEFAULT_OWNER
    return f"{owner}/{int(time.time() * 1000)}_{secrets.token_hex(5)}.{ext}"


def owned_object_paths(urls: Sequence[str], owner_id: str, bucket: str) -> List[str]:
    """Object paths for ``urls`` that live in ``bucket`` under ``owner_id/``."""

    paths: List[str] = []
    for url in urls:
        path = extract_object_path(url, bucket)
        if path and path.startswith(f"{owner_id}/") and path not in paths:
            paths.append(path)
    return paths


@dataclass
class InMemoryImageStore:
    """Dictionary-backed store used by tests and local runs."""

    bucket: str = "learning-logs"
    public_base_url: str = "http://testserver/storage/v1/object/public"
    objects: Dict[str, bytes] = field(default_factory=dict)
    content_types: Dict[str, Optional[str]] = field(default_factory=dict)

    def upload(
        self,
        data: bytes,
        owner_id: str,
        *,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        path = build_object_path(owner_id, filename)
        self.objects[path] = bytes(data)
        self.content_types[path] = content_type
        return self.public_url(path)

    def delete_paths(self, paths: Sequence[str]) -> int:
        removed = 0
        for path in paths:
            if self.objects.pop(path, None) is not None:
                self.content_types.pop(path, None)
                removed += 1
        return removed

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{path}"


class LocalImageStore:
    """Filesystem store laid out as ``<root>/<bucket>/<owner>/<file>``."""

    def __init__(self, config: StorageConfig) -> None:
        self.bucket = config.bucket
        self._public_base_url = config.public_base_url.rstrip("/")
        self._root = Path(config.root).expanduser() / config.bucket

    def upload(
        self,
        data: bytes,
        owner_id: str,
        *,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        path = build_object_path(owner_id, filename)
        target = self._root / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("xb") as handle:
                handle.write(data)
        except OSError as exc:
            raise ObjectStoreError(f"failed to store {path}: {exc}") from exc
        logger.info(
            "image_stored",
            extra={"path": path, "bytes": len(data), "content_type": content_type},
        )
        return self.public_url(path)

    def delete_paths(self, paths: Sequence[str]) -> int:
        removed = 0
        for path in paths:
            target = self._root / path
            try:
                target.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise ObjectStoreError(f"failed to remove {path}: {exc}") from exc
            removed += 1
        return removed

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{self.bucket}/{path}"


def build_image_store(config: Optional[StorageConfig] = None) -> LocalImageStore:
    return LocalImageStore(config or load_settings().storage)
