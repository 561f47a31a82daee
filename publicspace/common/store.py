"""Document store capability keyed by document id."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Protocol

from publicspace.common.fs import read_json, write_json


class DocumentStore(Protocol):
    def get(self, collection: str, document_id: str) -> dict[str, Any] | None: ...

    def set(self, collection: str, document_id: str, fields: dict[str, Any], *, merge: bool = False) -> None: ...

    def query(self, collection: str, **equals: Any) -> list[tuple[str, dict[str, Any]]]: ...


class InMemoryDocumentStore:
    def __init__(self, collections: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = copy.deepcopy(collections or {})

    def get(self, collection: str, document_id: str) -> dict[str, Any] | None:
        document = self.collections.get(collection, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    def set(self, collection: str, document_id: str, fields: dict[str, Any], *, merge: bool = False) -> None:
        documents = self.collections.setdefault(collection, {})
        if merge and document_id in documents:
            documents[document_id].update(copy.deepcopy(fields))
        else:
            documents[document_id] = copy.deepcopy(fields)

    def query(self, collection: str, **equals: Any) -> list[tuple[str, dict[str, Any]]]:
        matches = []
        for document_id, fields in self.collections.get(collection, {}).items():
            if all(fields.get(key) == value for key, value in equals.items()):
                matches.append((document_id, copy.deepcopy(fields)))
        return matches


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Single-file store; with autoflush every write rewrites the file atomically."""

    def __init__(self, path: Path, *, autoflush: bool = True) -> None:
        self.path = path
        self.autoflush = autoflush
        payload = read_json(path) if path.exists() else {}
        super().__init__(payload.get("collections", {}))

    def set(self, collection: str, document_id: str, fields: dict[str, Any], *, merge: bool = False) -> None:
        super().set(collection, document_id, fields, merge=merge)
        if self.autoflush:
            self.flush()

    def flush(self) -> None:
        write_json(self.path, {"collections": self.collections})
