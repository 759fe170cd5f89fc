"""
KIAR archive source.

A KIAR archive is a zip file holding exactly one ``*.xml`` metadata file
plus the image files it references.  Records are streamed from the XML
member; ``IMAGE_FILE`` values are resolved relative to that member and
published as ``zip://<member>`` references.
"""

from __future__ import annotations

import posixpath
import zipfile
from collections.abc import Iterator

from kiar.core.errors import ParseError
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import ImageRef, Record
from kiar.framework.sources.base import SourceType
from kiar.framework.sources.xml_file import XmlFileSource

ARCHIVE_SCHEME = "zip://"


class KiarArchiveSource(XmlFileSource):
    """Reads records from the XML metadata inside a KIAR archive."""

    source_type = SourceType.KIAR

    _members: frozenset[str] = frozenset()
    _metadata_member: str = ""

    def _read(self, context: ProcessingContext) -> Iterator[Record]:
        try:
            archive = zipfile.ZipFile(self.path)
        except zipfile.BadZipFile as e:
            raise ParseError(f"{self.path.name} is not a valid archive", cause=e).with_context(
                stage=self.name, path=str(self.path)
            ) from e

        with archive:
            names = [info.filename for info in archive.infolist() if not info.is_dir()]
            metadata = [n for n in names if n.lower().endswith(".xml")]
            if len(metadata) != 1:
                raise ParseError(
                    f"{self.path.name} must contain exactly one XML metadata file, found {len(metadata)}",
                ).with_context(stage=self.name, path=str(self.path))

            self._members = frozenset(names)
            self._metadata_member = metadata[0]
            with archive.open(self._metadata_member) as f:
                yield from self._stream(f, context, f"{self.path.name}!{self._metadata_member}")

    def resolve_image(self, raw: str) -> ImageRef:
        """Resolve an image relative to the metadata member."""
        member = posixpath.normpath(posixpath.join(posixpath.dirname(self._metadata_member), raw))
        if member not in self._members:
            raise ValueError(f"{raw} is not part of the archive")
        return ImageRef(path=f"{ARCHIVE_SCHEME}{member}", source=str(self.path))
