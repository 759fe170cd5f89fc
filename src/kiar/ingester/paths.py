"""
Ingest directory layout.

::

    <ingest_path>/
        <participant>/
            <template name>.<suffix>    trigger file, consumed by the watcher
            <job name>.<suffix>         input file of one job
"""

from __future__ import annotations

import time
from pathlib import Path

from kiar.core.models.job import Job
from kiar.core.models.template import JobTemplate


def trigger_path(ingest_path: Path, template: JobTemplate) -> Path:
    return Path(ingest_path) / template.participant / f"{template.name}.{template.type.suffix}"


def job_path(ingest_path: Path, job: Job, template: JobTemplate) -> Path:
    return Path(ingest_path) / template.participant / f"{job.name}.{template.type.suffix}"


def new_job_name(template: JobTemplate) -> str:
    """``<template name>-<epoch millis>``"""
    return f"{template.name}-{time.time_ns() // 1_000_000}"
