"""Persistence for concept stores.

One JSON document per namespace, loaded once and cached for the lifetime of
the owning ConceptStorage. Every save rewrites the whole document using the
atomic write pattern (write to temp, then rename).

There is no module-level state: whoever wires the application together owns
a StoreRegistry and hands out per-namespace storages from it.
"""

from __future__ import annotations

import json
import logging
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .config import NAMESPACES_DIRNAME, STORE_FILENAME, STORE_VERSION
from .errors import StorageError
from .models import ConceptStore

log = logging.getLogger(__name__)


def empty_store() -> ConceptStore:
    return ConceptStore(version=STORE_VERSION, concepts=[], last_updated=datetime.now(UTC))


class ConceptStorage:
    """Loads and saves a single store document."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._store: ConceptStore | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ConceptStore:
        """Return the cached store, reading it from disk on first use.

        A missing, unreadable or invalid document yields an empty store so a
        first run or a corrupted file never prevents the caller from working.
        """
        if self._store is not None:
            return self._store

        self._store = self._read()
        return self._store

    def _read(self) -> ConceptStore:
        if not self._path.exists():
            log.debug("No store at %s; starting empty", self._path)
            return empty_store()

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            store = ConceptStore.model_validate(payload)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            log.warning("Could not load store %s, starting empty: %s", self._path, e)
            return empty_store()

        log.debug("Loaded %d concepts from %s", len(store.concepts), self._path)
        return store

    def save(self) -> None:
        """Stamp last_updated and replace the document on disk.

        Raises:
            StorageError: If the directory or file cannot be written.
        """
        store = self.load()
        store.last_updated = datetime.now(UTC)
        payload = store.model_dump(mode="json", by_alias=True, exclude_none=True)

        temp_path: Path | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                temp_path = Path(f.name)
                json.dump(payload, f, indent=2, ensure_ascii=False)
            temp_path.replace(self._path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to write store {self._path}: {e}",
                details={"path": str(self._path)},
            ) from e

    def reload(self) -> ConceptStore:
        """Drop the cached store and read it again from disk."""
        self._store = None
        return self.load()


def namespace_dirname(namespace: str) -> str:
    """Encode a namespace as a single, non-special directory name.

    Anything other than letters, digits, '-' and '_' is percent-encoded, which
    keeps distinct namespaces in distinct directories and rules out '.', '..'
    and path separators.
    """
    encoded = []
    for char in namespace:
        if char.isascii() and (char.isalnum() or char in "-_"):
            encoded.append(char)
        else:
            encoded.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(encoded) or "%00"


class StoreRegistry:
    """Per-namespace storages under one root directory.

    ``None`` is the default namespace and lives at ``<root>/concepts.json``;
    other namespaces live at ``<root>/namespaces/<encoded>/concepts.json``.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._storages: dict[str | None, ConceptStorage] = {}

    def path_for(self, namespace: str | None = None) -> Path:
        if namespace is None:
            return self.root / STORE_FILENAME
        return self.root / NAMESPACES_DIRNAME / namespace_dirname(namespace) / STORE_FILENAME

    def get(self, namespace: str | None = None) -> ConceptStorage:
        storage = self._storages.get(namespace)
        if storage is None:
            storage = ConceptStorage(self.path_for(namespace))
            self._storages[namespace] = storage
        return storage

    def namespaces(self) -> list[str | None]:
        return list(self._storages)
