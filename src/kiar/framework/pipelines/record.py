"""
Records flowing through a pipeline.

A :class:`Record` is one museum object: a mapping from the closed
:class:`Field` vocabulary to typed :class:`Value` instances.  Values are
tagged with a :class:`ValueType`; the multi-valued types (``MULTI_STRING``
and ``IMAGE``) hold an ordered tuple, all others a single scalar.

Usage:
    >>> record = Record()
    >>> record.set(Field.UUID, Value.identifier("9f1c..."))
    >>> record.set_string(Field.TITLE, "Portrait of a Lady")
    >>> record.add_string(Field.KEYWORDS, "portrait")
    >>> record.add_string(Field.KEYWORDS, "oil")
    >>> record.to_document()["KEYWORDS"]
    ['portrait', 'oil']
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any


class Field(str, Enum):
    """Shared field vocabulary of all records."""

    # System fields
    UUID = "UUID"
    INSTITUTION = "INSTITUTION"
    PARTICIPANT = "PARTICIPANT"
    CANTON = "CANTON"
    DISPLAY = "DISPLAY"
    COPYRIGHT = "COPYRIGHT"
    RIGHTS_STATEMENT = "RIGHTS_STATEMENT"
    RIGHTS_STATEMENT_URL = "RIGHTS_STATEMENT_URL"
    IMAGE = "IMAGE"
    IMAGE_COUNT = "IMAGE_COUNT"
    LAST_CHANGE = "LAST_CHANGE"

    # Content fields
    OBJECT_ID = "OBJECT_ID"
    TITLE = "TITLE"
    DESCRIPTION = "DESCRIPTION"
    OBJECT_TYPE = "OBJECT_TYPE"
    CREATOR = "CREATOR"
    DATING = "DATING"
    DATE_FROM = "DATE_FROM"
    DATE_TO = "DATE_TO"
    MATERIAL = "MATERIAL"
    TECHNIQUE = "TECHNIQUE"
    DIMENSIONS = "DIMENSIONS"
    KEYWORDS = "KEYWORDS"
    COLLECTION = "COLLECTION"
    CREDIT_LINE = "CREDIT_LINE"


class ValueType(str, Enum):
    """Type tag of a :class:`Value`."""

    IDENTIFIER = "IDENTIFIER"
    STRING = "STRING"
    MULTI_STRING = "MULTI_STRING"
    DATE = "DATE"
    INTEGER = "INTEGER"
    DOUBLE = "DOUBLE"
    IMAGE = "IMAGE"

    @property
    def multi_valued(self) -> bool:
        return self in (ValueType.MULTI_STRING, ValueType.IMAGE)


@dataclass(frozen=True)
class ImageRef:
    """Reference to an image file.

    ``path`` is what the index publishes (a file path, a ``zip://`` member
    reference or a URL); ``source`` names the file or host it came from.
    """

    path: str
    source: str | None = None


@dataclass(frozen=True)
class Value:
    """Immutable tagged value.

    Build values with the typed constructors (``Value.string("x")``); the
    payload is checked against the type tag on construction.
    """

    type: ValueType
    data: Any

    def __post_init__(self) -> None:
        match self.type:
            case ValueType.IDENTIFIER:
                ok = isinstance(self.data, str) and bool(self.data)
            case ValueType.STRING:
                ok = isinstance(self.data, str)
            case ValueType.MULTI_STRING:
                ok = isinstance(self.data, tuple) and all(isinstance(v, str) for v in self.data)
            case ValueType.DATE:
                ok = isinstance(self.data, date)
            case ValueType.INTEGER:
                ok = isinstance(self.data, int) and not isinstance(self.data, bool)
            case ValueType.DOUBLE:
                ok = isinstance(self.data, float)
            case ValueType.IMAGE:
                ok = isinstance(self.data, tuple) and all(isinstance(v, ImageRef) for v in self.data)
            case _:
                ok = False
        if not ok:
            raise TypeError(f"Invalid payload for {self.type.value}: {self.data!r}")

    # ── Constructors ─────────────────────────────────────────────
    @classmethod
    def identifier(cls, value: str) -> Value:
        return cls(ValueType.IDENTIFIER, value)

    @classmethod
    def string(cls, value: str) -> Value:
        return cls(ValueType.STRING, value)

    @classmethod
    def multi_string(cls, values: Iterable[str]) -> Value:
        return cls(ValueType.MULTI_STRING, tuple(values))

    @classmethod
    def date(cls, value: date) -> Value:
        return cls(ValueType.DATE, value)

    @classmethod
    def integer(cls, value: int) -> Value:
        return cls(ValueType.INTEGER, value)

    @classmethod
    def double(cls, value: float) -> Value:
        return cls(ValueType.DOUBLE, float(value))

    @classmethod
    def images(cls, refs: Iterable[ImageRef]) -> Value:
        return cls(ValueType.IMAGE, tuple(refs))

    # ── Accessors ────────────────────────────────────────────────
    def __len__(self) -> int:
        """Number of items; 1 for single-valued types."""
        return len(self.data) if self.type.multi_valued else 1

    def as_string(self) -> str:
        """String form; multi-valued types are joined with ``", "``."""
        match self.type:
            case ValueType.MULTI_STRING:
                return ", ".join(self.data)
            case ValueType.IMAGE:
                return ", ".join(ref.path for ref in self.data)
            case ValueType.DATE:
                return self.data.isoformat()
            case _:
                return str(self.data)

    def to_json(self) -> Any:
        match self.type:
            case ValueType.MULTI_STRING:
                return list(self.data)
            case ValueType.IMAGE:
                return [ref.path for ref in self.data]
            case ValueType.DATE:
                return self.data.isoformat()
            case _:
                return self.data


class Record:
    """A mutable mapping from :class:`Field` to :class:`Value`.

    Field order is insertion order.  Records are owned by exactly one stage
    at a time, so they are not synchronised.
    """

    __slots__ = ("_values",)

    def __init__(self, values: dict[Field, Value] | None = None):
        self._values: dict[Field, Value] = dict(values or {})

    def get(self, field: Field) -> Value | None:
        return self._values.get(field)

    def has(self, field: Field) -> bool:
        return field in self._values

    def set(self, field: Field, value: Value) -> Record:
        self._values[field] = value
        return self

    def set_string(self, field: Field, value: str) -> Record:
        return self.set(field, Value.string(value))

    def add_string(self, field: Field, value: str) -> Record:
        """Append ``value`` to a multi-valued string field.

        An existing single string is promoted to a multi-string.
        """
        current = self._values.get(field)
        if current is None:
            items: tuple[str, ...] = ()
        elif current.type is ValueType.MULTI_STRING:
            items = current.data
        elif current.type is ValueType.STRING:
            items = (current.data,)
        else:
            raise TypeError(f"Cannot add a string to {field.value} of type {current.type.value}")
        return self.set(field, Value.multi_string((*items, value)))

    def add_image(self, ref: ImageRef) -> Record:
        current = self._values.get(Field.IMAGE)
        items = current.data if current is not None else ()
        return self.set(Field.IMAGE, Value.images((*items, ref)))

    def as_string(self, field: Field) -> str | None:
        value = self._values.get(field)
        return value.as_string() if value is not None else None

    def remove(self, field: Field) -> Value | None:
        return self._values.pop(field, None)

    def fields(self) -> list[Field]:
        return list(self._values)

    @property
    def uuid(self) -> str | None:
        """Identity of the record for logging and publishing."""
        return self.as_string(Field.UUID)

    def to_document(self) -> dict[str, Any]:
        """Plain JSON-serialisable dict keyed by field name."""
        return {field.value: value.to_json() for field, value in self._values.items()}

    def copy(self) -> Record:
        return Record(self._values)

    def __contains__(self, field: object) -> bool:
        return field in self._values

    def __iter__(self) -> Iterator[Field]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Record(uuid={self.uuid!r}, fields={len(self._values)})"
