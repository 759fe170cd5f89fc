"""Sets IMAGE_COUNT to the number of images a record references."""

from __future__ import annotations

from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Field, Record, Value
from kiar.framework.pipelines.stage import Transformer


class ImageCountTransformer(Transformer):
    def transform(self, record: Record, context: ProcessingContext) -> Record | None:
        images = record.get(Field.IMAGE)
        record.set(Field.IMAGE_COUNT, Value.integer(len(images) if images is not None else 0))
        return record
