"""Filesystem implementation of DocumentStorage.

Stores documents in a local directory tree; used in development and tests.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List
import uuid

from esign.core.errors import NotFound, StorageError
from esign.storage.base import DEFAULT_CHUNK_SIZE, DocumentStorage, StoredObject, join_folder


class LocalDocumentStorage(DocumentStorage):
    """A ref is the object's path relative to the storage root."""

    backend_name = "local"

    def __init__(self, root_path: str | Path):
        self._root = Path(root_path).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, relative: str) -> Path:
        path = (self._root / relative).resolve()
        if path != self._root and self._root not in path.parents:
            raise StorageError("Path escapes the storage root")
        return path

    def list_pdfs(self, folder: str) -> List[StoredObject]:
        directory = self._resolve(join_folder(folder))
        if not directory.is_dir():
            return []

        objects = []
        for entry in directory.iterdir():
            if not entry.is_file() or entry.suffix.lower() != ".pdf":
                continue
            stat = entry.stat()
            objects.append(
                StoredObject(
                    ref=entry.relative_to(self._root).as_posix(),
                    name=entry.name,
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                    content_type="application/pdf",
                )
            )
        objects.sort(key=lambda o: o.modified, reverse=True)
        return objects

    def download(self, ref: str) -> bytes:
        path = self._resolve(ref)
        if not path.is_file():
            raise NotFound("Stored document not found")
        return path.read_bytes()

    def iter_download(self, ref: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._resolve(ref)
        if not path.is_file():
            raise NotFound("Stored document not found")
        return self._read_chunks(path, chunk_size)

    @staticmethod
    def _read_chunks(path: Path, chunk_size: int) -> Iterator[bytes]:
        with path.open("rb") as handle:
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def upload(self, data: bytes, name: str, content_type: str, folder: str) -> StoredObject:
        directory = self._resolve(join_folder(folder))
        directory.mkdir(parents=True, exist_ok=True)
        path = self._resolve(join_folder(folder, name))
        try:
            path.write_bytes(data)
        except OSError as e:
            raise StorageError("Storage upload failed") from e
        return StoredObject(
            ref=path.relative_to(self._root).as_posix(),
            name=name,
            modified=datetime.now(timezone.utc),
            size=len(data),
            content_type=content_type,
        )

    def ensure_folder(self, parent: str, name: str) -> str:
        folder = join_folder(parent, name)
        self._resolve(folder).mkdir(parents=True, exist_ok=True)
        return folder

    def check(self, folder: str, write_probe: bool = False) -> Dict[str, Any]:
        directory = self._resolve(join_folder(folder))
        result: Dict[str, Any] = {
            "backend": self.backend_name,
            "folder": join_folder(folder),
            "reachable": directory.is_dir(),
            "writable": None,
            "error": None if directory.is_dir() else "Folder does not exist",
        }
        if write_probe and result["reachable"]:
            probe = directory / f"esign-check-{uuid.uuid4().hex}.txt"
            try:
                probe.write_bytes(b"esign storage check\n")
                probe.unlink()
                result["writable"] = True
            except OSError as e:
                result["writable"] = False
                result["error"] = type(e).__name__
        return result
