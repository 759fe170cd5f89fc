"""
XML file source.

The document is streamed with ``iterparse``: every element whose tag is the
record tag (``EntityMapping.record_tag``) becomes one record and is cleared
once mapped, so memory stays flat for large exports.

Attribute ``source`` paths are ElementTree paths relative to the record
element.  A trailing ``@name`` selects an attribute instead of the text::

    title                 text of <title>
    creators/creator      text of every <creator>
    image@file            attribute "file" of every <image>
    @id                   attribute "id" of the record element itself
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from kiar.core.errors import ParseError
from kiar.core.models.template import EntityMapping
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Record
from kiar.framework.sources.base import FileSource, SourceType


def local_name(tag: str) -> str:
    """Tag without its ``{namespace}`` prefix."""
    return tag.rsplit("}", 1)[-1]


def lookup_element(element: ET.Element, path: str) -> list[str]:
    """Return the texts (or attribute values) found at ``path``."""
    path, _, attribute = path.partition("@")
    path = path.rstrip("/")
    matches = element.findall(path) if path else [element]
    if attribute:
        return [m.get(attribute) for m in matches if m.get(attribute) is not None]
    return ["".join(m.itertext()) for m in matches]


class XmlFileSource(FileSource):
    """Reads records from an XML document."""

    source_type = SourceType.XML

    def __init__(self, path: str | Path, mapping: EntityMapping, record_tag: str | None = None):
        super().__init__(path, mapping)
        self.record_tag = record_tag or mapping.record_tag

    def _read(self, context: ProcessingContext) -> Iterator[Record]:
        with open(self.path, "rb") as f:
            yield from self._stream(f, context, self.path.name)

    def _stream(self, f: IO[bytes], context: ProcessingContext, name: str) -> Iterator[Record]:
        try:
            for _event, element in ET.iterparse(f, events=("end",)):
                if local_name(element.tag) != self.record_tag:
                    continue
                record = self.mapper.map(lambda path, element=element: lookup_element(element, path), context)
                element.clear()
                yield record
        except ET.ParseError as e:
            raise ParseError(f"Invalid XML in {name}: {e}", cause=e).with_context(
                stage=self.name, path=str(self.path)
            ) from e
