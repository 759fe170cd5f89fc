"""Job scheduling and file watching."""

from kiar.ingester.builder import PipelineBuilder
from kiar.ingester.server import IngesterServer
from kiar.ingester.watcher import FileWatcher

__all__ = ["FileWatcher", "IngesterServer", "PipelineBuilder"]
