"""Sinks publishing records to a search index."""

from kiar.framework.sinks.file_index import FileIndexClient
from kiar.framework.sinks.index import IndexSink
from kiar.framework.sinks.institutions import institution_document, sync_institutions

__all__ = ["FileIndexClient", "IndexSink", "institution_document", "sync_institutions"]
