"""
Pipeline assembly.

Every job runs the same chain, parameterised by its template::

    <format source> → RequiredFieldsTransformer → InstitutionTransformer
                    → ImageCountTransformer → IndexSink
"""

from __future__ import annotations

from kiar.core.models.job import Job
from kiar.core.models.template import JobTemplate
from kiar.core.protocols import EntityStore, IndexClient
from kiar.core.settings import KiarSettings
from kiar.framework.pipelines.pipeline import Pipeline
from kiar.framework.sinks.index import IndexSink
from kiar.framework.sources import source_for
from kiar.framework.transformers import (
    ImageCountTransformer,
    InstitutionTransformer,
    RequiredFieldsTransformer,
)
from kiar.ingester.paths import job_path


def collection_for(template: JobTemplate) -> str:
    """Index collection a template publishes to."""
    return template.collection or template.name


class PipelineBuilder:
    """Builds the pipeline of a job from its template.

    Raises :class:`~kiar.core.errors.ConfigError` when the template's
    mapping cannot be applied (unknown field, missing parser parameter).
    """

    def __init__(self, store: EntityStore, index_client: IndexClient, settings: KiarSettings):
        self.store = store
        self.index_client = index_client
        self.settings = settings

    def build(self, job: Job, template: JobTemplate) -> Pipeline:
        source = source_for(template, job_path(self.settings.ingest_path, job, template))
        stage = RequiredFieldsTransformer(source, template.mapping)
        stage = InstitutionTransformer(stage, self.store)
        stage = ImageCountTransformer(stage)
        sink = IndexSink(
            stage,
            self.index_client,
            collection=collection_for(template),
            batch_size=self.settings.sink_batch_size,
        )
        return Pipeline(sink, name=template.name)
