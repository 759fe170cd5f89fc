"""
JSON file source.

The document is either an array of objects or an object holding that array
under one of ``records``, ``items``, ``objects`` or ``data``.  Attribute
``source`` paths are dotted (``creator.name``); lists met on the way are
fanned out, so ``images.file`` collects every image file name.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from kiar.core.errors import ParseError
from kiar.core.models.job import JobLogContext, JobLogLevel
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Record
from kiar.framework.sources.base import FileSource, SourceType

RECORD_KEYS = ("records", "items", "objects", "data")


def lookup_path(obj: Any, path: str) -> list[str]:
    """Return the scalar values found at a dotted ``path`` as strings."""
    current = [obj]
    for part in path.split("."):
        found = []
        for item in current:
            if isinstance(item, dict) and part in item:
                value = item[part]
                if isinstance(value, list):
                    found.extend(value)
                else:
                    found.append(value)
        current = found

    values = []
    for value in current:
        if isinstance(value, bool):
            values.append("true" if value else "false")
        elif isinstance(value, (str, int, float)):
            values.append(str(value))
    return values


class JsonFileSource(FileSource):
    """Reads records from a JSON document."""

    source_type = SourceType.JSON

    def _read(self, context: ProcessingContext) -> Iterator[Record]:
        for index, item in enumerate(self._load()):
            if not isinstance(item, dict):
                context.log(
                    JobLogLevel.WARNING,
                    f"Entry {index} of {self.path.name} is not an object and was ignored.",
                    context=JobLogContext.SYSTEM,
                )
                continue
            yield self.mapper.map(lambda path, item=item: lookup_path(item, path), context)

    def _load(self) -> list[Any]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Invalid JSON in {self.path.name}: {e}", cause=e).with_context(
                stage=self.name, path=str(self.path)
            ) from e

        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in RECORD_KEYS:
                if isinstance(data.get(key), list):
                    return data[key]
        raise ParseError(
            f"Expected a JSON array or an object with one of {', '.join(RECORD_KEYS)}",
        ).with_context(stage=self.name, path=str(self.path))
