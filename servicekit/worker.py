"""Runs registered jobs concurrently with a bound on how many run at once."""

from __future__ import annotations

import threading
import time
import uuid
from typing import Callable, Optional

JobFn = Callable[[threading.Event], None]

_DEFAULT_JOB_SECONDS = 1.0


class WorkerError(Exception):
    """Raised when the worker cannot carry out a request."""


class Worker:
    """Manages jobs and their concurrent execution.

    Each job receives an event that is set when the job is stopped, the
    worker shuts down, or the job's deadline passes.
    """

    def __init__(self, max_running_jobs: int) -> None:
        if max_running_jobs <= 0:
            raise ValueError("max running jobs must be greater than 0")
        self._cond = threading.Condition()
        self._available = max_running_jobs
        self._active = 0
        self._is_shutdown = False
        self._running: dict[str, threading.Event] = {}

    def __enter__(self) -> "Worker":
        return self

    def __exit__(self, *exc: object) -> None:
        if not self._is_shutdown:
            self.shutdown()

    def running(self) -> int:
        """Return the number of jobs running."""
        with self._cond:
            return len(self._running)

    def start(self, job_fn: JobFn, timeout: Optional[float] = None) -> str:
        """Launch job_fn in a thread and return its work key.

        timeout bounds both the wait for a free slot and the job's deadline;
        without it the wait is unbounded and the job gets one second.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                if self._is_shutdown:
                    raise WorkerError("shutting down")
                if self._available > 0:
                    self._available -= 1
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise TimeoutError("context deadline exceeded")
                self._cond.wait(remaining)

            work_key = str(uuid.uuid4())
            done = threading.Event()
            self._running[work_key] = done
            self._active += 1

        job_deadline = deadline if deadline is not None else time.monotonic() + _DEFAULT_JOB_SECONDS
        timer = threading.Timer(max(0.0, job_deadline - time.monotonic()), done.set)
        timer.daemon = True
        timer.start()

        thread = threading.Thread(
            target=self._run,
            args=(work_key, job_fn, done, timer),
            name=f"worker-{work_key[:8]}",
            daemon=True,
        )
        thread.start()
        return work_key

    def stop(self, work_key: str) -> None:
        """Cancel a running job."""
        with self._cond:
            done = self._running.get(work_key)
            if done is None:
                raise WorkerError(f"work[{work_key}] is not running")
            done.set()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every job and wait for all of them to finish."""
        with self._cond:
            if self._is_shutdown:
                raise WorkerError("already shut down")
            self._is_shutdown = True
            for done in self._running.values():
                done.set()
            self._cond.notify_all()
            if not self._cond.wait_for(lambda: self._active == 0, timeout):
                raise TimeoutError("context deadline exceeded")

    def _run(self, work_key: str, job_fn: JobFn, done: threading.Event, timer: threading.Timer) -> None:
        try:
            job_fn(done)
        finally:
            done.set()
            timer.cancel()
            with self._cond:
                self._running.pop(work_key, None)
                self._active -= 1
                self._available += 1
                self._cond.notify_all()