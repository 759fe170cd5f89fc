"""Record transformers: validation and enrichment stages."""

from kiar.framework.transformers.image_count import ImageCountTransformer
from kiar.framework.transformers.institution import InstitutionTransformer
from kiar.framework.transformers.required import RequiredFieldsTransformer

__all__ = [
    "ImageCountTransformer",
    "InstitutionTransformer",
    "RequiredFieldsTransformer",
]
