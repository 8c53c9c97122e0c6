"""Bounded worker pool for page-level and image-level jobs.

Jobs carry the index their output names are derived from, so completion order
does not matter. Every job, successful or not, advances the shared progress
counter exactly once.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .progress import ProgressState


@dataclass
class Job:
    index: int
    label: str
    func: Callable[[], Any]


@dataclass
class JobOutcome:
    index: int
    label: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


def default_concurrency() -> int:
    return max(2, os.cpu_count() or 1)


def execute_job(job: Job, progress: Optional[ProgressState]) -> JobOutcome:
    try:
        value = job.func()
        return JobOutcome(index=job.index, label=job.label, ok=True, value=value)
    except Exception as exc:  # pylint: disable=broad-except
        logging.warning("Job %s failed: %s", job.label, exc)
        logging.debug("Job %s traceback", job.label, exc_info=True)
        return JobOutcome(index=job.index, label=job.label, ok=False, error=str(exc))
    finally:
        if progress is not None:
            progress.increment()


def run_jobs(jobs: Sequence[Job], progress: Optional[ProgressState] = None,
             workers: Optional[int] = None, serial: bool = False) -> List[JobOutcome]:
    """Run *jobs* and return their outcomes ordered by job index."""
    if not jobs:
        return []
    outcomes: List[JobOutcome] = []
    limit = max(1, workers or default_concurrency())
    if serial or limit == 1 or len(jobs) == 1:
        for job in jobs:
            outcomes.append(execute_job(job, progress))
    else:
        with ThreadPoolExecutor(max_workers=min(limit, len(jobs))) as executor:
            future_map = {executor.submit(execute_job, job, progress): job for job in jobs}
            for future in as_completed(future_map):
                outcomes.append(future.result())
    outcomes.sort(key=lambda outcome: outcome.index)
    return outcomes
