"""
Directory-backed index.

Each collection is one JSON Lines file, ``<directory>/<collection>.jsonl``.
Changes are staged in ``<collection>.jsonl.tmp`` and become visible only
when ``commit`` atomically replaces the collection file.

Usage:
    client = FileIndexClient(Path("index"))
    client.delete_all("objects")
    client.add("objects", [{"UUID": "a1", "TITLE": "Vase"}])
    client.commit("objects")
    client.documents("objects")
"""

from __future__ import annotations

import json
import os
import shutil
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from kiar.core.errors import SinkError


class FileIndexClient:
    """:class:`~kiar.core.protocols.IndexClient` writing JSON Lines files."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path(self, collection: str) -> Path:
        return self.directory / f"{collection}.jsonl"

    def _staging(self, collection: str) -> Path:
        return self.directory / f"{collection}.jsonl.tmp"

    def delete_all(self, collection: str) -> None:
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            self._staging(collection).write_text("", encoding="utf-8")

    def add(self, collection: str, documents: Sequence[dict[str, Any]]) -> None:
        with self._lock:
            staging = self._staging(collection)
            if not staging.exists():
                # Start from the committed state
                self.directory.mkdir(parents=True, exist_ok=True)
                if self.path(collection).exists():
                    shutil.copyfile(self.path(collection), staging)
                else:
                    staging.touch()
            with open(staging, "a", encoding="utf-8") as f:
                for document in documents:
                    f.write(json.dumps(document, ensure_ascii=False))
                    f.write("\n")

    def commit(self, collection: str) -> None:
        with self._lock:
            staging = self._staging(collection)
            if not staging.exists():
                return
            with open(staging, "rb") as f:
                os.fsync(f.fileno())
            os.replace(staging, self.path(collection))

    def rollback(self, collection: str) -> None:
        with self._lock:
            self._staging(collection).unlink(missing_ok=True)

    def documents(self, collection: str) -> list[dict[str, Any]]:
        """Committed documents of a collection."""
        path = self.path(collection)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                return [json.loads(line) for line in f if line.strip()]
        except json.JSONDecodeError as e:
            raise SinkError(f"Corrupt index file {path}", cause=e) from e
