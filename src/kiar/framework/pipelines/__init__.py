"""Streaming pipeline: records, stages, processing context."""

from kiar.framework.pipelines.context import ContextSnapshot, ProcessingContext
from kiar.framework.pipelines.pipeline import Pipeline, PipelineResult
from kiar.framework.pipelines.record import Field, ImageRef, Record, Value, ValueType
from kiar.framework.pipelines.stage import Sink, Source, Stage, Transformer

__all__ = [
    "ContextSnapshot",
    "ProcessingContext",
    "Pipeline",
    "PipelineResult",
    "Field",
    "ImageRef",
    "Record",
    "Value",
    "ValueType",
    "Sink",
    "Source",
    "Stage",
    "Transformer",
]
