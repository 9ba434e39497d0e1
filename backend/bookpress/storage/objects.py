"""
BookPress — Object storage for page images, compiled books and covers.

Key layout (per family):
  {family}/pages/{page_id}-{revision}-{dpi}dpi.png
  {family}/compiled/{fingerprint}-{size}-{job_id}.pdf
  {family}/covers/cover-{size}-{pages}p-{mode}-{order}.pdf

Compiled books and covers are written once. Downloads go through
time-limited presigned URLs.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from datetime import timedelta
from typing import Protocol

from bookpress.errors import ArtifactExistsError, StorageError
from bookpress.utils.logging import logger


class ObjectStore(Protocol):
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: dict[str, str] | None = None,
        overwrite: bool = False,
    ) -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def exists(self, key: str) -> bool: ...

    async def presign(self, key: str, ttl_seconds: int) -> str: ...


def init_firebase(credentials_path: str = "", bucket: str = ""):
    """Initialise the default Firebase app once per process."""
    import firebase_admin
    from firebase_admin import credentials

    if firebase_admin._apps:
        return firebase_admin.get_app()

    if credentials_path:
        if not os.path.exists(credentials_path):
            raise FileNotFoundError(f"Firebase credentials not found: {credentials_path}")
        cred = credentials.Certificate(credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    logger.info("Initialising Firebase (bucket=%s)", bucket or "-")
    return firebase_admin.initialize_app(cred, {"storageBucket": bucket})


class InMemoryObjectStore:
    """Process-local store. Presigned URLs are opaque memory:// links."""

    def __init__(self, bucket: str = "bookpress-local"):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.presign_calls = 0

    async def put(self, key, data, content_type="application/octet-stream", metadata=None, overwrite=False):
        if not overwrite and key in self.objects:
            raise ArtifactExistsError(key)
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type
        self.metadata[key] = dict(metadata or {})

    async def get(self, key):
        try:
            return self.objects[key]
        except KeyError:
            raise StorageError("get", f"no object at {key}")

    async def exists(self, key):
        return key in self.objects

    async def presign(self, key, ttl_seconds):
        if key not in self.objects:
            raise StorageError("presign", f"no object at {key}")
        self.presign_calls += 1
        sig = hashlib.sha256(f"{key}:{self.presign_calls}".encode()).hexdigest()[:16]
        return f"memory://{self.bucket}/{key}?ttl={ttl_seconds}&sig={sig}"


class FirebaseObjectStore:
    """Cloud Storage bucket via firebase_admin. Blocking SDK calls run in threads."""

    def __init__(self, bucket_name: str = ""):
        from firebase_admin import storage

        self.bucket = storage.bucket(bucket_name or None)

    async def put(self, key, data, content_type="application/octet-stream", metadata=None, overwrite=False):
        blob = self.bucket.blob(key)
        if not overwrite and await asyncio.to_thread(blob.exists):
            raise ArtifactExistsError(key)
        if metadata:
            blob.metadata = metadata
        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except Exception as exc:
            logger.error("Upload failed for %s: %s", key, exc, exc_info=True)
            raise StorageError("put", str(exc)) from exc
        logger.info("  Uploaded %d bytes → %s", len(data), key)

    async def get(self, key):
        blob = self.bucket.blob(key)
        if not await asyncio.to_thread(blob.exists):
            raise StorageError("get", f"no object at {key}")
        return await asyncio.to_thread(blob.download_as_bytes)

    async def exists(self, key):
        return await asyncio.to_thread(self.bucket.blob(key).exists)

    async def presign(self, key, ttl_seconds):
        blob = self.bucket.blob(key)
        return await asyncio.to_thread(
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )


def page_artifact_key(family_id: str, page_id: str, revision: str, dpi: int) -> str:
    return f"{family_id}/pages/{page_id}-{revision}-{dpi}dpi.png"


def compiled_key(family_id: str, fingerprint: str, book_size: str, job_id: str) -> str:
    return f"{family_id}/compiled/{fingerprint}-{book_size}-{job_id}.pdf"


def cover_key(family_id: str, book_size: str, page_count: int, mode: str, order_id: str) -> str:
    return f"{family_id}/covers/cover-{book_size}-{page_count}p-{mode}-{order_id}.pdf"
