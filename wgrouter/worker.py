"""Pool worker running the parallel stage of router jobs."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from .sequential import SequentialQueue

log = logging.getLogger(__name__)


class _ParallelJob(Protocol):
    def parallel_work(self) -> None: ...

    def queue(self) -> SequentialQueue: ...


def worker(jobs: Iterable[_ParallelJob]) -> None:
    """Do the parallel work of each job, then drain the job's in-order queue.

    Returns when ``jobs`` is exhausted.
    """
    for job in jobs:
        job.parallel_work()
        job.queue().consume()
    log.debug("worker stopped: job source exhausted")