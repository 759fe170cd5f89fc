"""Tests for pipeline assembly and the ingest directory layout."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

from conftest import make_template
from kiar.core.errors import ConfigError
from kiar.core.models.job import Job
from kiar.core.models.template import AttributeMapping, EntityMapping, JobType
from kiar.framework.sources import JsonFileSource, KiarArchiveSource
from kiar.ingester.builder import PipelineBuilder, collection_for
from kiar.ingester.paths import job_path, new_job_name, trigger_path


class TestPaths:
    def test_trigger_path(self):
        template = make_template("prints", JobType.XML)
        assert trigger_path(Path("/data"), template) == Path("/data/museum-net/prints.xml")

    def test_job_path(self):
        template = make_template("prints", JobType.KIAR)
        job = Job.create(name="prints-1700000000000", template_id=template.id)
        assert job_path(Path("/data"), job, template) == Path("/data/museum-net/prints-1700000000000.kiar")

    def test_new_job_name(self):
        assert re.fullmatch(r"prints-\d{13}", new_job_name(make_template("prints")))

    def test_trigger_file(self):
        assert make_template("prints", JobType.JSON).trigger_file == "prints.json"


class TestPipelineBuilder:
    def test_collection_defaults_to_template_name(self):
        assert collection_for(make_template("prints")) == "prints"
        assert collection_for(make_template("prints", collection="prints-v2")) == "prints-v2"

    def test_stage_chain(self, store, index, settings):
        template = make_template("objects")
        job = Job.create(name="objects-1", template_id=template.id)

        pipeline = PipelineBuilder(store, index, settings).build(job, template)

        assert [s.name for s in pipeline.stages] == [
            "JsonFileSource",
            "RequiredFieldsTransformer",
            "InstitutionTransformer",
            "ImageCountTransformer",
            "IndexSink",
        ]
        assert isinstance(pipeline.source, JsonFileSource)
        assert pipeline.source.path == settings.ingest_path / "museum-net" / "objects-1.json"
        assert pipeline.sink.batch_size == settings.sink_batch_size

    def test_archive_template(self, store, index, settings):
        template = make_template("objects", JobType.KIAR)
        job = Job.create(name="objects-1", template_id=template.id)
        assert isinstance(PipelineBuilder(store, index, settings).build(job, template).source, KiarArchiveSource)

    def test_bad_mapping_is_a_config_error(self, store, index, settings):
        mapping = EntityMapping(name="m", type=JobType.JSON, attributes=(AttributeMapping("x", "NOT_A_FIELD"),))
        template = make_template(mapping=mapping)
        with pytest.raises(ConfigError):
            PipelineBuilder(store, index, settings).build(Job.create(name="x", template_id=template.id), template)
