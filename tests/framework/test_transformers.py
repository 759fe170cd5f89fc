"""Tests for the record transformers."""

from __future__ import annotations

from conftest import PARTICIPANT, ListSource, make_institution, make_mapping, make_record
from kiar.core.models.institution import License
from kiar.core.models.job import JobLogLevel
from kiar.core.models.template import AttributeMapping, EntityMapping, JobType, ValueParser
from kiar.framework.pipelines.record import Field, ImageRef, Record, Value
from kiar.framework.transformers import (
    ImageCountTransformer,
    InstitutionTransformer,
    RequiredFieldsTransformer,
)


def run(stage, context):
    return list(stage.to_stream(context))


# ── InstitutionTransformer ───────────────────────────────────


class TestInstitutionTransformer:
    def test_record_without_uuid_is_an_error(self, store, institution, context):
        stage = InstitutionTransformer(ListSource([make_record(None, institution="Museum B")]), store)

        assert run(stage, context) == []
        assert (context.processed, context.skipped, context.error) == (0, 0, 1)
        (entry,) = context.logs
        assert entry.level is JobLogLevel.SEVERE
        assert "uuid" in entry.description

    def test_unknown_institution_is_skipped_with_its_name(self, store, institution, context):
        stage = InstitutionTransformer(ListSource([make_record("a-3", institution="Museum A")]), store)

        assert run(stage, context) == []
        assert (context.skipped, context.error) == (1, 0)
        (entry,) = context.logs
        assert entry.level is JobLogLevel.WARNING
        assert entry.document_id == "a-3"
        assert "'Museum A'" in entry.description

    def test_unpublished_institution_is_skipped(self, store, context):
        store.save_institution(make_institution("Museum C", publish=False))
        stage = InstitutionTransformer(ListSource([make_record("a-1", institution="Museum C")]), store)

        assert run(stage, context) == []
        assert context.skipped == 1

    def test_institution_of_other_participant_is_skipped(self, store, context):
        store.save_institution(make_institution("Museum B", participant="elsewhere"))
        stage = InstitutionTransformer(ListSource([make_record("a-1", institution="Museum B")]), store)

        assert run(stage, context) == []
        assert context.skipped == 1

    def test_default_copyright_is_filled(self, store, institution, context):
        stage = InstitutionTransformer(ListSource([make_record("a-1", institution="Museum B")]), store)

        (record,) = run(stage, context)

        assert record.as_string(Field.COPYRIGHT) == "CC-BY-4.0"
        assert record.as_string(Field.PARTICIPANT) == PARTICIPANT
        assert record.as_string(Field.CANTON) == "BE"
        assert record.as_string(Field.DISPLAY) == "Museum B (Bern)"
        assert record.as_string(Field.RIGHTS_STATEMENT) == License.CC_BY.long
        assert record.as_string(Field.RIGHTS_STATEMENT_URL) == License.CC_BY.url
        assert context.logs == ()

    def test_existing_values_are_not_overwritten(self, store, institution, context):
        source = ListSource([make_record("a-1", institution="Museum B", copyright="Private", canton="ZH")])

        (record,) = run(InstitutionTransformer(source, store), context)

        assert record.as_string(Field.COPYRIGHT) == "Private"
        assert record.as_string(Field.CANTON) == "ZH"

    def test_single_institution_is_derived(self, store, institution, context):
        (record,) = run(InstitutionTransformer(ListSource([make_record("a-1")]), store), context)
        assert record.as_string(Field.INSTITUTION) == "Museum B"
        assert record.as_string(Field.COPYRIGHT) == "CC-BY-4.0"

    def test_missing_institution_is_an_error_when_ambiguous(self, store, institution, context):
        store.save_institution(make_institution("Museum C"))

        assert run(InstitutionTransformer(ListSource([make_record("a-1")]), store), context) == []

        assert context.error == 1
        assert context.logs[0].level is JobLogLevel.ERROR

    def test_order_is_preserved(self, store, institution, context):
        records = [make_record(f"a-{i}", institution="Museum B") for i in range(5)]
        out = run(InstitutionTransformer(ListSource(records), store), context)
        assert [r.uuid for r in out] == [f"a-{i}" for i in range(5)]


# ── RequiredFieldsTransformer ────────────────────────────────


class TestRequiredFieldsTransformer:
    def test_passes_complete_records(self, context):
        stage = RequiredFieldsTransformer(ListSource([make_record("a-1", title="Vase")]), make_mapping())
        assert len(run(stage, context)) == 1
        assert context.error == 0

    def test_drops_record_missing_required_field(self, context):
        stage = RequiredFieldsTransformer(ListSource([make_record("a-5")]), make_mapping())

        assert run(stage, context) == []
        assert context.error == 1
        (entry,) = context.logs
        assert entry.level is JobLogLevel.ERROR
        assert "'TITLE'" in entry.description
        assert entry.document_id == "a-5"

    def test_missing_uuid_is_left_to_the_institution_check(self, context):
        stage = RequiredFieldsTransformer(ListSource([make_record(None, title="Vase")]), make_mapping())
        assert len(run(stage, context)) == 1
        assert context.error == 0

    def test_required_fields_are_deduplicated(self, context):
        mapping = EntityMapping(
            name="m",
            type=JobType.JSON,
            attributes=(
                AttributeMapping("title", "TITLE", required=True),
                AttributeMapping("name", "TITLE", required=True),
                AttributeMapping("maker", "CREATOR", ValueParser.STRING, required=True),
            ),
        )
        stage = RequiredFieldsTransformer(ListSource([]), mapping)
        assert stage.required == (Field.TITLE, Field.CREATOR)


# ── ImageCountTransformer ────────────────────────────────────


class TestImageCountTransformer:
    def test_counts_images(self, context):
        record = make_record("a-1")
        record.add_image(ImageRef("a.jpg"))
        record.add_image(ImageRef("b.jpg"))

        (out,) = run(ImageCountTransformer(ListSource([record])), context)

        assert out.get(Field.IMAGE_COUNT) == Value.integer(2)

    def test_zero_without_images(self, context):
        (out,) = run(ImageCountTransformer(ListSource([Record()])), context)
        assert out.get(Field.IMAGE_COUNT) == Value.integer(0)
