"""
Binary storage for uploaded identity documents.
Paths are relative `<application_id>/<uuid>_<filename>` keys; the store resolves them.
"""
from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Protocol
from uuid import UUID

from domain.errors import ResourceNotFoundError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def _storage_key(application_id: UUID, filename: str) -> str:
    safe = _UNSAFE.sub("_", Path(filename or "upload").name) or "upload"
    return f"{application_id}/{uuid.uuid4().hex}_{safe}"


class DocumentStore(Protocol):
    def put(self, application_id: UUID, filename: str, content: bytes, content_type: str | None) -> str: ...

    def get(self, path: str) -> bytes: ...

    def delete(self, path: str) -> None: ...


class LocalDocumentStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return target

    def put(self, application_id: UUID, filename: str, content: bytes, content_type: str | None) -> str:
        key = _storage_key(application_id, filename)
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Stored document %s (%d bytes, %s)", key, len(content), content_type)
        return key

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise ResourceNotFoundError("Document", path)
        return target.read_bytes()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        target.unlink(missing_ok=True)
        logger.info("Deleted document %s", path)


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put(self, application_id: UUID, filename: str, content: bytes, content_type: str | None) -> str:
        key = _storage_key(application_id, filename)
        self.objects[key] = content
        return key

    def get(self, path: str) -> bytes:
        try:
            return self.objects[path]
        except KeyError:
            raise ResourceNotFoundError("Document", path) from None

    def delete(self, path: str) -> None:
        self.objects.pop(path, None)
