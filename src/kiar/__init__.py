"""
KIAR ingest - ingestion engine for museum collection metadata.

Subpackages:
- kiar.core: errors, settings, domain models and the entity store
- kiar.framework: records, pipeline stages, sources, transformers, sinks, logging
- kiar.ingester: job scheduling and file watchers
- kiar.cli: the ``kiar`` command
"""

__version__ = "0.1.0"
