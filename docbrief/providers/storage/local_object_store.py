"""Filesystem-backed object store.

Stores uploaded document bytes under a root directory, one file per
object path (``<owner_id>/<document_id>/<filename>``).  File I/O runs in a
worker thread so large uploads do not block the event loop.

Public references are ``<object_store_public_base_url>/<path>`` when a base
URL is configured (e.g. a static file server in front of the directory),
otherwise ``file://`` URIs.
"""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath

import structlog

from docbrief.interfaces.object_store import IObjectStore
from docbrief.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)


class LocalObjectStore(IObjectStore):
    """Object store writing to a local directory tree."""

    def __init__(self, root_dir: str | Path, public_base_url: str = "") -> None:
        self._root = Path(root_dir).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            raise StorageError(
                message=f"Could not read object {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def put(self, path: str, data: bytes, content_type: str = "") -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageError(
                message=f"Could not write object {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("object_stored", path=path, size=len(data), content_type=content_type)
        return self.public_ref(path)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as exc:
            raise StorageError(
                message=f"Could not delete object {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def public_ref(self, path: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{PurePosixPath(path).as_posix()}"
        return self._resolve(path).as_uri()

    def get_provider_name(self) -> str:
        return "local_object_store"

    def _resolve(self, path: str) -> Path:
        """Map an object path to a file below the root, rejecting traversal."""
        target = (self._root / path).resolve()
        if target == self._root or self._root not in target.parents:
            raise StorageError(
                message=f"Object path escapes the store root: {path}",
                provider_name=self.get_provider_name(),
            )
        return target
