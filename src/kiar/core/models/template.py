"""Job template and mapping models.

A :class:`JobTemplate` describes the shape of a pipeline: which file format
its source reads, how source attributes map onto record fields, which
participant owns it, and whether a watcher should pick up its trigger file
automatically.  Templates are read-only to the ingestion engine.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobType(str, Enum):
    """Input format of a job template."""

    XML = "XML"
    JSON = "JSON"
    KIAR = "KIAR"  # zip archive: XML metadata plus image files

    @property
    def suffix(self) -> str:
        """File suffix of trigger and job files of this type."""
        return self.value.lower()


class ValueParser(str, Enum):
    """How a raw source value is converted into a typed record value."""

    UUID = "UUID"
    STRING = "STRING"
    MULTISTRING = "MULTISTRING"
    DATE = "DATE"
    INTEGER = "INTEGER"
    DOUBLE = "DOUBLE"
    IMAGE_FILE = "IMAGE_FILE"
    IMAGE_MPLUS = "IMAGE_MPLUS"


@dataclass(frozen=True)
class AttributeMapping:
    """Maps one source attribute onto one record field.

    ``destination`` holds the field name; it is resolved to a
    :class:`~kiar.framework.pipelines.record.Field` when the source is built.
    """

    source: str
    destination: str
    parser: ValueParser = ValueParser.STRING
    required: bool = False
    multi_valued: bool = False
    parameters: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "destination": self.destination,
            "parser": self.parser.value,
            "required": self.required,
            "multi_valued": self.multi_valued,
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttributeMapping:
        return cls(
            source=data["source"],
            destination=data["destination"],
            parser=ValueParser(data.get("parser", ValueParser.STRING.value)),
            required=bool(data.get("required", False)),
            multi_valued=bool(data.get("multi_valued", False)),
            parameters=dict(data.get("parameters") or {}),
        )


@dataclass(frozen=True)
class EntityMapping:
    """Ordered attribute mappings for one input format.

    For XML sources ``record_tag`` names the element that delimits a record.
    """

    name: str
    type: JobType
    attributes: tuple[AttributeMapping, ...] = ()
    record_tag: str = "object"

    @property
    def required(self) -> tuple[AttributeMapping, ...]:
        return tuple(a for a in self.attributes if a.required)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "record_tag": self.record_tag,
            "attributes": [a.to_dict() for a in self.attributes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityMapping:
        return cls(
            name=data["name"],
            type=JobType(data["type"]),
            record_tag=data.get("record_tag", "object"),
            attributes=tuple(AttributeMapping.from_dict(a) for a in data.get("attributes", [])),
        )


@dataclass(frozen=True)
class JobTemplate:
    """Configuration of a pipeline for one participant and input format."""

    id: str
    name: str
    participant: str
    type: JobType
    mapping: EntityMapping
    start_automatically: bool = False
    collection: str | None = None
    description: str | None = None

    @classmethod
    def create(cls, name: str, participant: str, type: JobType, mapping: EntityMapping, **kwargs: Any) -> JobTemplate:
        return cls(id=str(uuid.uuid4()), name=name, participant=participant, type=type, mapping=mapping, **kwargs)

    @property
    def trigger_file(self) -> str:
        """Name of the file a watcher waits for."""
        return f"{self.name}.{self.type.suffix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "participant": self.participant,
            "type": self.type.value,
            "start_automatically": self.start_automatically,
            "collection": self.collection,
            "description": self.description,
            "mapping": self.mapping.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobTemplate:
        """Build a template from its ``to_dict`` form; ``id`` is generated when absent."""
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data["name"],
            participant=data["participant"],
            type=JobType(data["type"]),
            mapping=EntityMapping.from_dict(data["mapping"]),
            start_automatically=bool(data.get("start_automatically", False)),
            collection=data.get("collection"),
            description=data.get("description"),
        )
