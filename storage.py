# storage.py
import copy
import json
import os
import threading
from typing import Any, Dict, Optional


class StorageError(Exception):
    """Raised when a document cannot be read from or written to its backend."""


class DocumentStore:
    """A durable JSON-like document that is always read and written whole."""

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None if it has never been saved."""
        raise NotImplementedError

    def save(self, document: Dict[str, Any]) -> None:
        raise NotImplementedError

    def exists(self) -> bool:
        return self.load() is not None


class JsonFileStore(DocumentStore):
    """Stores a document as a pretty-printed JSON file.

    Writes go through a temp file and os.replace, so a reader sees either the
    previous document or the new one, never a partial write.
    """

    def __init__(self, path: str):
        self.path = path
        self._write_lock = threading.Lock()

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e

        if not isinstance(document, dict):
            raise StorageError(f"Expected a JSON object in {self.path}, got {type(document).__name__}")
        return document

    def save(self, document: Dict[str, Any]) -> None:
        tmp_path = f"{self.path}.tmp"
        with self._write_lock:
            try:
                os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except (OSError, TypeError, ValueError) as e:
                raise StorageError(f"Could not write {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"JsonFileStore({self.path!r})"


class InMemoryStore(DocumentStore):
    """Keeps the document in memory. Used in tests and for throwaway runs."""

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self._document = copy.deepcopy(document)

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._document)

    def save(self, document: Dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)
