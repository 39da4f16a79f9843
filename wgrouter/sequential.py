"""In-order completion queue for jobs whose work finishes out of order."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque

from .messages import INORDER_QUEUE_SIZE


class SequentialJob(ABC):
    """A job that becomes ready at some point and is then finished in order."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the job's parallel work has completed."""

    @abstractmethod
    def sequential_work(self) -> None:
        """Finish the job; called once, in queue order."""


class SequentialQueue:
    """Bounded FIFO whose ready front jobs are drained by a single consumer."""

    def __init__(self, capacity: int = INORDER_QUEUE_SIZE) -> None:
        self._capacity = capacity
        self._jobs: deque[SequentialJob] = deque()
        self._lock = threading.Lock()
        self._contenders = 0

    def push(self, job: SequentialJob) -> bool:
        """Append ``job``; False if the queue is full and the job was dropped."""
        with self._lock:
            if len(self._jobs) >= self._capacity:
                return False
            self._jobs.append(job)
            return True

    def _pop_ready(self) -> SequentialJob | None:
        with self._lock:
            if self._jobs and self._jobs[0].is_ready():
                return self._jobs.popleft()
            return None

    def consume(self) -> None:
        """Run every ready job at the front, unless another thread is already doing so.

        A caller that arrives while another is consuming registers itself,
        and the active consumer makes another pass on its behalf.
        """
        with self._lock:
            self._contenders += 1
            if self._contenders > 1:
                return
        contenders = 1
        while contenders > 0:
            while (job := self._pop_ready()) is not None:
                job.sequential_work()
            with self._lock:
                self._contenders -= contenders
                contenders = self._contenders

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)