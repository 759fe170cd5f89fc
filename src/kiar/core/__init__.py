"""Core primitives: errors, settings, domain models, schema and the entity store."""

from kiar.core.errors import (
    ErrorCategory,
    ErrorContext,
    InvalidJobStateError,
    JobCancelledError,
    JobNotFoundError,
    KiarError,
    SchedulingError,
    TemplateNotFoundError,
)
from kiar.core.protocols import EntityStore, IndexClient
from kiar.core.settings import KiarSettings, get_settings
from kiar.core.store import SqliteEntityStore

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KiarError",
    "SchedulingError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "TemplateNotFoundError",
    "JobCancelledError",
    "EntityStore",
    "IndexClient",
    "KiarSettings",
    "get_settings",
    "SqliteEntityStore",
]
