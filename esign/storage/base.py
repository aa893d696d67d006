"""Abstract document storage interface.

Template PDFs are read from, and signed output written to, a storage backend.
Folders are addressed by path-like strings ("templates/ica"), objects by an
opaque ``ref`` returned from listing or upload.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredObject:
    """A document held by a storage backend."""

    ref: str
    name: str
    modified: Optional[datetime] = None
    size: Optional[int] = None
    content_type: Optional[str] = None


def join_folder(*parts: str) -> str:
    """Join folder segments with '/', dropping empty segments and stray slashes."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


class DocumentStorage(ABC):
    """Contract every document storage backend implements.

    Example usage:
        storage = create_storage(settings)
        newest = storage.list_pdfs("templates")[0]
        pdf_bytes = storage.download(newest.ref)
    """

    backend_name = "abstract"

    @abstractmethod
    def list_pdfs(self, folder: str) -> List[StoredObject]:
        """List the PDFs directly inside ``folder``, newest first.

        Raises:
            StorageError: If the backend cannot be reached.
        """

    @abstractmethod
    def download(self, ref: str) -> bytes:
        """Fetch an object's full content.

        Raises:
            NotFound: If ``ref`` does not name an object.
            StorageError: If the backend cannot be reached.
        """

    def iter_download(self, ref: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield an object's content in chunks; backends override to stream."""
        data = self.download(ref)
        return iter([data[start:start + chunk_size] for start in range(0, len(data), chunk_size)])

    @abstractmethod
    def upload(self, data: bytes, name: str, content_type: str, folder: str) -> StoredObject:
        """Store ``data`` as ``name`` inside ``folder``, replacing an object of the same name."""

    @abstractmethod
    def ensure_folder(self, parent: str, name: str) -> str:
        """Return the child folder ``name`` of ``parent``, creating it when the backend needs to."""

    @abstractmethod
    def check(self, folder: str, write_probe: bool = False) -> Dict[str, Any]:
        """Report whether ``folder`` is reachable and, with ``write_probe``, writable."""
