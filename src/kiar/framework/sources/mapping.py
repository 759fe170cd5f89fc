"""
Attribute mapping: raw source values → typed record fields.

A :class:`RecordMapper` applies an :class:`~kiar.core.models.template.EntityMapping`
to one raw input object.  Sources only have to provide a lookup function
returning the raw string values found at an attribute's ``source`` path.

Parsers:
    UUID         identifier (non-empty)
    STRING       single string; all values when ``multi_valued``
    MULTISTRING  split on ``delimiter`` (default ``,``), blanks dropped
    DATE         ``format`` (strptime) or ISO-8601
    INTEGER      int
    DOUBLE       float
    IMAGE_FILE   path relative to the source file (resolved by the source)
    IMAGE_MPLUS  ``host`` parameter + value

A value that fails to parse raises :class:`~kiar.core.errors.ValidationError`
inside the mapper; it is logged as a WARNING and the field is left out.  The
record itself is still emitted.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime

from kiar.core.errors import ConfigError, ValidationError
from kiar.core.models.job import JobLogContext, JobLogLevel
from kiar.core.models.template import AttributeMapping, EntityMapping, ValueParser
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Field, ImageRef, Record, Value, ValueType

Lookup = Callable[[str], list[str]]
ImageResolver = Callable[[str], ImageRef]

_IMAGE_PARSERS = (ValueParser.IMAGE_FILE, ValueParser.IMAGE_MPLUS)


def resolve_field(name: str) -> Field:
    """Resolve a mapping destination to a :class:`Field`."""
    try:
        return Field(name)
    except ValueError:
        raise ConfigError(f"Unknown destination field: {name}").with_context(destination=name) from None


def parse_date(raw: str, fmt: str | None = None) -> date:
    if fmt:
        return datetime.strptime(raw, fmt).date()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return datetime.fromisoformat(raw).date()


class RecordMapper:
    """Builds records from raw values according to an entity mapping.

    Args:
        mapping: Attribute mappings to apply, in order
        image_resolver: Turns an ``IMAGE_FILE`` value into an image
            reference; raises ``ValueError`` if the image does not exist.
            Required only when the mapping uses ``IMAGE_FILE``.
    """

    def __init__(self, mapping: EntityMapping, image_resolver: ImageResolver | None = None):
        self.mapping = mapping
        self._image_resolver = image_resolver
        self._attributes: list[tuple[AttributeMapping, Field]] = []
        for attribute in mapping.attributes:
            field = resolve_field(attribute.destination)
            if attribute.parser is ValueParser.IMAGE_MPLUS and not attribute.parameters.get("host"):
                raise ConfigError(f"IMAGE_MPLUS mapping for {attribute.source} requires a 'host' parameter")
            if attribute.parser is ValueParser.IMAGE_FILE and image_resolver is None:
                raise ConfigError(f"Source cannot resolve IMAGE_FILE mapping for {attribute.source}")
            self._attributes.append((attribute, field))

    def map(self, lookup: Lookup, context: ProcessingContext) -> Record:
        record = Record()
        problems: list[tuple[JobLogContext, ValidationError]] = []

        for attribute, field in self._attributes:
            raws = [v.strip() for v in lookup(attribute.source) if v is not None and v.strip()]
            if not raws:
                continue
            try:
                self._apply(record, field, attribute, raws)
            except ValidationError as e:
                log_context = (
                    JobLogContext.RESOURCE if attribute.parser in _IMAGE_PARSERS else JobLogContext.METADATA
                )
                problems.append((log_context, e))

        # Logged once the record is complete, so entries carry its UUID
        for log_context, error in problems:
            context.log(JobLogLevel.WARNING, error.message, document_id=record.uuid, context=log_context)
        return record

    def _apply(self, record: Record, field: Field, attribute: AttributeMapping, raws: list[str]) -> None:
        try:
            self._set_values(record, field, attribute, raws)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                f"Value of {attribute.source} for field {field.value} is invalid: {e}", cause=e
            ).with_context(source=attribute.source, field=field.value) from e

    def _set_values(self, record: Record, field: Field, attribute: AttributeMapping, raws: list[str]) -> None:
        params = attribute.parameters
        match attribute.parser:
            case ValueParser.UUID:
                record.set(field, Value.identifier(raws[0]))
            case ValueParser.STRING:
                if attribute.multi_valued:
                    for raw in raws:
                        record.add_string(field, raw)
                else:
                    record.set_string(field, raws[0])
            case ValueParser.MULTISTRING:
                delimiter = params.get("delimiter", ",")
                for raw in raws:
                    for part in raw.split(delimiter):
                        if part.strip():
                            record.add_string(field, part.strip())
            case ValueParser.DATE:
                record.set(field, Value.date(parse_date(raws[0], params.get("format"))))
            case ValueParser.INTEGER:
                record.set(field, Value.integer(int(raws[0])))
            case ValueParser.DOUBLE:
                record.set(field, Value.double(float(raws[0])))
            case ValueParser.IMAGE_FILE:
                refs, missing = [], []
                for raw in raws:
                    try:
                        refs.append(self._image_resolver(raw))
                    except ValueError:
                        missing.append(raw)
                self._add_images(record, field, refs)
                if missing:
                    raise ValueError(f"image not found: {', '.join(missing)}")
            case ValueParser.IMAGE_MPLUS:
                host = params["host"].rstrip("/")
                refs = [ImageRef(path=f"{host}/{raw.lstrip('/')}", source=host) for raw in raws]
                self._add_images(record, field, refs)

    @staticmethod
    def _add_images(record: Record, field: Field, refs: list[ImageRef]) -> None:
        if not refs:
            return
        current = record.get(field)
        items = current.data if current is not None and current.type is ValueType.IMAGE else ()
        record.set(field, Value.images((*items, *refs)))
