"""
Institution transformer.

Verifies that every record belongs to a publishable institution of the
job's participant and enriches it with that institution's defaults.

Per record:
    1. no UUID                             → SEVERE, error += 1, drop
    2. no INSTITUTION and the participant
       has not exactly one institution     → ERROR, error += 1, drop
    3. INSTITUTION not publishable for the
       participant                         → WARNING, skipped += 1, drop
    4. fill absent PARTICIPANT, CANTON, DISPLAY, COPYRIGHT,
       RIGHTS_STATEMENT, RIGHTS_STATEMENT_URL from the institution

The institutions are looked up once per stream, when it is opened.
"""

from __future__ import annotations

from kiar.core.models.institution import Institution
from kiar.core.models.job import JobLogLevel
from kiar.core.protocols import EntityStore
from kiar.framework.logging import get_logger
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Field, Record
from kiar.framework.pipelines.stage import Stage, Transformer

log = get_logger(__name__)


class InstitutionTransformer(Transformer):
    """Validates and enriches records against the participant's institutions."""

    def __init__(self, input: Stage, store: EntityStore):
        super().__init__(input)
        self.store = store
        self._institutions: dict[str, Institution] = {}

    def open(self, context: ProcessingContext) -> None:
        self._institutions = {
            i.name: i for i in self.store.list_institutions(participant=context.participant, publish=True)
        }
        log.debug("institutions.loaded", count=len(self._institutions))

    def transform(self, record: Record, context: ProcessingContext) -> Record | None:
        uuid = record.uuid
        if uuid is None:
            context.log(JobLogLevel.SEVERE, "Document skipped: Field 'uuid' is missing.")
            context.increment_error()
            return None

        name = record.as_string(Field.INSTITUTION)
        if name is None:
            if len(self._institutions) != 1:
                context.log(
                    JobLogLevel.ERROR,
                    "Document skipped: Fields 'institution' and 'participant' are missing.",
                    document_id=uuid,
                )
                context.increment_error()
                return None
            (institution,) = self._institutions.values()
            record.set_string(Field.INSTITUTION, institution.name)
            name = institution.name

        institution = self._institutions.get(name)
        if institution is None:
            context.log(
                JobLogLevel.WARNING,
                f"Document skipped: Could not find database entry for institution '{name}'.",
                document_id=uuid,
            )
            context.increment_skipped()
            return None

        self._enrich(record, institution)
        return record

    @staticmethod
    def _enrich(record: Record, institution: Institution) -> None:
        defaults = {
            Field.PARTICIPANT: institution.participant,
            Field.CANTON: institution.canton,
            Field.DISPLAY: institution.display_name,
            Field.COPYRIGHT: institution.default_copyright,
        }
        if institution.default_license is not None:
            defaults[Field.RIGHTS_STATEMENT] = institution.default_license.long
            defaults[Field.RIGHTS_STATEMENT_URL] = institution.default_license.url

        for field, value in defaults.items():
            if value is not None and not record.has(field):
                record.set_string(field, value)
