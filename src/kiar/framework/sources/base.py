"""
Base class for file-backed sources.

A file source reads one job file from the ingest directory and maps every
raw object in it to a :class:`~kiar.framework.pipelines.record.Record`
through the template's entity mapping.

Errors:
    - missing file → :class:`~kiar.core.errors.SourceNotFoundError`
    - malformed document → :class:`~kiar.core.errors.ParseError`
    - any other I/O failure → :class:`~kiar.core.errors.SourceError`
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from kiar.core.errors import KiarError, SourceError, SourceNotFoundError
from kiar.core.models.template import EntityMapping, ValueParser
from kiar.framework.logging import get_logger
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import ImageRef, Record
from kiar.framework.pipelines.stage import Source
from kiar.framework.sources.mapping import RecordMapper

log = get_logger(__name__)


class SourceType(str, Enum):
    """Input formats understood by the file sources."""

    JSON = "json"
    XML = "xml"
    KIAR = "kiar"


@dataclass
class SourceMetadata:
    """Metadata about one read of a source, logged when the read ends."""

    source_name: str
    source_type: SourceType
    path: str
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    bytes_read: int | None = None
    row_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        result = {
            "source_name": self.source_name,
            "source_type": self.source_type.value,
            "path": self.path,
            "started_at": self.started_at.isoformat(),
            "row_count": self.row_count,
        }
        if self.bytes_read is not None:
            result["bytes_read"] = self.bytes_read
        return result


class FileSource(Source):
    """Source reading one file with an entity mapping."""

    source_type: SourceType

    def __init__(self, path: str | Path, mapping: EntityMapping):
        self.path = Path(path)
        self.mapping = mapping
        uses_files = any(a.parser is ValueParser.IMAGE_FILE for a in mapping.attributes)
        self.mapper = RecordMapper(mapping, image_resolver=self.resolve_image if uses_files else None)

    def read(self, context: ProcessingContext) -> Iterator[Record]:
        if not self.path.is_file():
            raise SourceNotFoundError(f"File not found: {self.path}").with_context(
                job_id=context.job_id, stage=self.name, path=str(self.path)
            )

        metadata = SourceMetadata(
            source_name=self.name,
            source_type=self.source_type,
            path=str(self.path),
            bytes_read=self.path.stat().st_size,
        )
        try:
            for record in self._read(context):
                metadata.row_count += 1
                yield record
        except KiarError:
            raise
        except OSError as e:
            raise self._wrap_error(e, f"Failed to read file: {self.path}") from e

        log.info("source.completed", **metadata.to_dict())

    @abstractmethod
    def _read(self, context: ProcessingContext) -> Iterator[Record]:
        """Yield mapped records in document order."""
        ...

    def resolve_image(self, raw: str) -> ImageRef:
        """Resolve an ``IMAGE_FILE`` value relative to the source file."""
        image = self.path.parent / raw
        if not image.is_file():
            raise ValueError(f"{raw} does not exist")
        return ImageRef(path=str(image), source=str(self.path))

    def _wrap_error(self, error: Exception, message: str | None = None) -> SourceError:
        """Wrap an exception in SourceError with context."""
        if isinstance(error, SourceError):
            return error
        return SourceError(message or str(error), cause=error).with_context(
            stage=self.name, path=str(self.path)
        )

    def __repr__(self) -> str:
        return f"{self.name}(path={str(self.path)!r})"
