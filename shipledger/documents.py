"""
Off-chain document storage.

Document content is stored by document id, separate from the ledger.
The ledger (via the shipment record) keeps only the sha256 digest taken at
upload, which is what integrity verification compares against.
"""

from __future__ import annotations

import base64
import hashlib
import json
import threading
from pathlib import Path
from typing import Protocol

Content = bytes | str


def compute_hash(content: Content) -> str:
    """
    Compute sha256 hash of content.

    Args:
        content: Raw bytes or string (hashed as UTF-8)

    Returns:
        Hex-encoded sha256 hash
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def content_size(content: Content) -> int:
    if isinstance(content, str):
        return len(content.encode("utf-8"))
    return len(content)


class DocumentStore(Protocol):
    """Contract for document content storage."""

    def store(self, document_id: str, content: Content) -> bool:
        """Store (or overwrite) content under document_id."""
        ...

    def fetch(self, document_id: str) -> Content | None:
        """Return stored content, or None if absent."""
        ...

    def exists(self, document_id: str) -> bool:
        ...

    def compute_hash(self, content: Content) -> str:
        ...


class InMemoryDocumentStore:
    """Dict-backed document store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blobs: dict[str, Content] = {}

    def store(self, document_id: str, content: Content) -> bool:
        if not document_id or content is None:
            return False
        with self._lock:
            self._blobs[document_id] = content
        return True

    def fetch(self, document_id: str) -> Content | None:
        with self._lock:
            return self._blobs.get(document_id)

    def exists(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._blobs

    def compute_hash(self, content: Content) -> str:
        return compute_hash(content)

    def count(self) -> int:
        return len(self._blobs)


class FileDocumentStore:
    """
    File-backed document store.

    Each blob is a JSON wrapper (text, or base64 for bytes) filed under the
    first two characters of its document id:

        <root>/01/01HV3...json

    Overwriting a blob is allowed; verification catches it by digest.
    """

    def __init__(self, root: Path):
        """
        Initialize document store.

        Args:
            root: Directory holding document blobs
        """
        self.root = root

    def _blob_path(self, document_id: str) -> Path:
        """Get path for a document blob."""
        return self.root / document_id[:2] / f"{document_id}.json"

    def store(self, document_id: str, content: Content) -> bool:
        if not document_id or content is None:
            return False

        blob_path = self._blob_path(document_id)
        blob_path.parent.mkdir(parents=True, exist_ok=True)

        if isinstance(content, bytes):
            # For raw bytes, store as base64 in JSON wrapper
            serialized = json.dumps({
                "_type": "binary",
                "_encoding": "base64",
                "data": base64.b64encode(content).decode("ascii"),
            }, indent=2)
        else:
            serialized = json.dumps({
                "_type": "text",
                "data": content,
            }, indent=2)

        # Write atomically (write to temp, then rename)
        temp_path = blob_path.with_suffix(".tmp")
        temp_path.write_text(serialized, encoding="utf-8")
        temp_path.replace(blob_path)
        return True

    def fetch(self, document_id: str) -> Content | None:
        blob_path = self._blob_path(document_id)
        if not blob_path.exists():
            return None

        data = json.loads(blob_path.read_text(encoding="utf-8"))
        if data.get("_type") == "binary":
            return base64.b64decode(data["data"])
        return data.get("data")

    def exists(self, document_id: str) -> bool:
        return self._blob_path(document_id).exists()

    def compute_hash(self, content: Content) -> str:
        return compute_hash(content)

    def list_document_ids(self) -> list[str]:
        """List all document IDs in the store."""
        document_ids: list[str] = []
        if not self.root.exists():
            return document_ids

        for prefix_dir in self.root.iterdir():
            if prefix_dir.is_dir() and len(prefix_dir.name) == 2:
                for blob in prefix_dir.glob("*.json"):
                    document_ids.append(blob.stem)
        return document_ids
