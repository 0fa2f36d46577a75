from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote

from brand_studio.services.errors import StorageError

logger = logging.getLogger(__name__)


class ArtifactStore(ABC):
    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def download(self, bucket: str, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def delete(self, bucket: str, path: str) -> None:
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    """Buckets are sub-directories of ``root``; the app serves ``root`` under ``/files``."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Upload to {bucket}/{path} failed: {exc}") from exc
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {bucket}/{path}")

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/files/{quote(bucket)}/{quote(path)}"

    def download(self, bucket: str, path: str) -> bytes:
        try:
            return self._resolve(bucket, path).read_bytes()
        except OSError as exc:
            raise StorageError(f"Download of {bucket}/{path} failed: {exc}") from exc

    def delete(self, bucket: str, path: str) -> None:
        try:
            self._resolve(bucket, path).unlink()
        except FileNotFoundError:
            logger.warning(f"Nothing to delete at {bucket}/{path}")
        except OSError as exc:
            raise StorageError(f"Delete of {bucket}/{path} failed: {exc}") from exc

    def _resolve(self, bucket: str, path: str) -> Path:
        bucket_root = (self.root / bucket).resolve()
        target = (bucket_root / path).resolve()
        if bucket_root not in target.parents:
            raise StorageError(f"Path {path!r} escapes bucket {bucket!r}")
        return target
