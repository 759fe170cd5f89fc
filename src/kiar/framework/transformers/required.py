"""Drops records lacking a field that the template's mapping marks required."""

from __future__ import annotations

from kiar.core.models.job import JobLogLevel
from kiar.core.models.template import EntityMapping
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Field, Record
from kiar.framework.pipelines.stage import Stage, Transformer
from kiar.framework.sources.mapping import resolve_field


class RequiredFieldsTransformer(Transformer):
    def __init__(self, input: Stage, mapping: EntityMapping):
        super().__init__(input)
        # Ordered, without duplicates; a missing UUID is reported by InstitutionTransformer
        fields = dict.fromkeys(resolve_field(a.destination) for a in mapping.required)
        self.required: tuple[Field, ...] = tuple(f for f in fields if f is not Field.UUID)

    def transform(self, record: Record, context: ProcessingContext) -> Record | None:
        missing = [f.value for f in self.required if not record.has(f)]
        if not missing:
            return record
        context.log(
            JobLogLevel.ERROR,
            f"Document skipped: Required field(s) {', '.join(repr(m) for m in missing)} missing.",
            document_id=record.uuid,
        )
        context.increment_error()
        return None
