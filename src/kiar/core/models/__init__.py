"""Domain models: jobs, job templates, institutions."""

from kiar.core.models.institution import Institution, License
from kiar.core.models.job import (
    ACTIVE_STATUSES,
    JOB_VALID_TRANSITIONS,
    SCHEDULABLE_STATUSES,
    InvalidTransitionError,
    Job,
    JobLog,
    JobLogContext,
    JobLogLevel,
    JobSource,
    JobStatus,
    validate_job_transition,
)
from kiar.core.models.template import AttributeMapping, EntityMapping, JobTemplate, JobType, ValueParser

__all__ = [
    "Institution",
    "License",
    "ACTIVE_STATUSES",
    "JOB_VALID_TRANSITIONS",
    "SCHEDULABLE_STATUSES",
    "InvalidTransitionError",
    "Job",
    "JobLog",
    "JobLogContext",
    "JobLogLevel",
    "JobSource",
    "JobStatus",
    "validate_job_transition",
    "AttributeMapping",
    "EntityMapping",
    "JobTemplate",
    "JobType",
    "ValueParser",
]
