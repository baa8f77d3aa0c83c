"""Object store for uploaded files (QC photos, drawings).

Objects are addressed by bucket-relative paths following the convention

    {category}/{entity_id}/{timestamp_ms}_{file_name}

e.g. `qc-images/6f1c.../1718000000000_weld.jpg`. The default backend
keeps them on the local filesystem under `settings.storage_root/<bucket>`.
"""

import logging
import os
import time
from pathlib import Path

from trackflow.auth.jwt import create_file_token
from trackflow.config import settings

logger = logging.getLogger(__name__)


def object_path(category: str, entity_id: str, file_name: str, timestamp_ms: int | None = None) -> str:
    """Build the bucket-relative path for a new object."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_name = os.path.basename(file_name.replace("\\", "/")) or "upload"
    return f"{category}/{entity_id}/{timestamp_ms}_{safe_name}"


class LocalObjectStore:
    """Bucket on local disk."""

    def __init__(self, root: str | Path, bucket: str):
        self.bucket = bucket
        self.base = (Path(root) / bucket).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.base / path).resolve()
        if self.base not in target.parents:
            raise ValueError(f"Path escapes bucket: {path}")
        return target

    def put(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Exclusive create; an existing object raises FileExistsError
        with open(target, "xb") as fh:
            fh.write(data)
        logger.info("Stored %s (%d bytes) in bucket %s", path, len(data), self.bucket)
        return path

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        target.unlink()
        return True

    def local_path(self, path: str) -> Path:
        return self._resolve(path)

    @staticmethod
    def public_url(path: str) -> str:
        return f"/api/files/{path}"


def signed_url(path: str) -> str:
    """Download link that works without a bearer token until it expires."""
    return f"{LocalObjectStore.public_url(path)}?token={create_file_token(path)}"


_store: LocalObjectStore | None = None


def get_store() -> LocalObjectStore:
    """FastAPI dependency / accessor for the configured object store."""
    global _store
    if _store is None:
        _store = LocalObjectStore(settings.storage_root, settings.storage_bucket)
    return _store
