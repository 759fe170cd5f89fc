"""
File sources for job input.

- JsonFileSource: JSON array of objects
- XmlFileSource: streamed XML export
- KiarArchiveSource: zip with XML metadata and images

Usage:
    from kiar.framework.sources import source_for

    source = source_for(template, path)
"""

from __future__ import annotations

from pathlib import Path

from kiar.core.models.template import JobTemplate, JobType
from kiar.framework.sources.archive import KiarArchiveSource
from kiar.framework.sources.base import FileSource, SourceMetadata, SourceType
from kiar.framework.sources.json_file import JsonFileSource
from kiar.framework.sources.mapping import RecordMapper
from kiar.framework.sources.xml_file import XmlFileSource

SOURCE_TYPES: dict[JobType, type[FileSource]] = {
    JobType.JSON: JsonFileSource,
    JobType.XML: XmlFileSource,
    JobType.KIAR: KiarArchiveSource,
}


def source_for(template: JobTemplate, path: str | Path) -> FileSource:
    """Create the source reading ``path`` for a template's input format."""
    return SOURCE_TYPES[template.type](path, template.mapping)


__all__ = [
    "FileSource",
    "JsonFileSource",
    "KiarArchiveSource",
    "RecordMapper",
    "SOURCE_TYPES",
    "SourceMetadata",
    "SourceType",
    "XmlFileSource",
    "source_for",
]
