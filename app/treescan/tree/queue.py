"""Job queue driving scan jobs one at a time.

The queue executes at most one ScanJob at a time, so the tree only ever
has one writer. In background mode a single daemon worker thread drains
the queue while the caller continues; in foreground mode the caller
drains it explicitly with ``step()`` or ``run_until_idle()``.

The directory listing itself runs outside the shared lock; applying a
job's result, queue bookkeeping and all owner callbacks run inside it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from enum import Enum

from treescan.tree.job import JobResult, ScanJob
from treescan.tree.models import FileInfo

logger = logging.getLogger(__name__)


class QueueState(str, Enum):
    """State of the job queue.

    Attributes:
        IDLE: Nothing pending or executing.
        BUSY: Jobs are pending or executing.
        ABORTING: Abort requested; waiting for the in-flight job to return.
    """

    IDLE = "idle"
    BUSY = "busy"
    ABORTING = "aborting"


def _ignore_job(_job: ScanJob) -> None:
    return None


def _ignore() -> None:
    return None


class JobQueue:
    """FIFO queue of scan jobs with abort support.

    Args:
        apply_result: Called with each finished job and its result, unless
            the queue is aborting or the job was killed.
        on_job_starting: Called right before a job executes.
        on_job_discarded: Called for every job dropped without its result
            being applied.
        on_finished: Called once when the queue runs empty.
        on_aborted: Called once when an abort has completed.
        lock: Re-entrant lock shared with the queue's owner.
        background: Drain the queue on a worker thread.
    """

    def __init__(
        self,
        apply_result: Callable[[ScanJob, JobResult], None],
        *,
        on_job_starting: Callable[[ScanJob], None] = _ignore_job,
        on_job_discarded: Callable[[ScanJob], None] = _ignore_job,
        on_finished: Callable[[], None] = _ignore,
        on_aborted: Callable[[], None] = _ignore,
        lock: threading.RLock | None = None,
        background: bool = True,
    ) -> None:
        self._apply_result = apply_result
        self._on_job_starting = on_job_starting
        self._on_job_discarded = on_job_discarded
        self._on_finished = on_finished
        self._on_aborted = on_aborted
        self._lock = lock if lock is not None else threading.RLock()
        self._background = background

        self._pending: deque[ScanJob] = deque()
        self._current: ScanJob | None = None
        self._state = QueueState.IDLE
        self._worker: threading.Thread | None = None
        self._idle = threading.Event()
        self._idle.set()

    @property
    def state(self) -> QueueState:
        """Current queue state."""
        return self._state

    @property
    def is_busy(self) -> bool:
        """Check if jobs are pending, executing or being aborted."""
        return self._state is not QueueState.IDLE

    @property
    def pending_count(self) -> int:
        """Number of jobs waiting to be executed."""
        return len(self._pending)

    @property
    def current(self) -> ScanJob | None:
        """The job currently executing, if any."""
        return self._current

    def add_job(self, job: ScanJob) -> None:
        """Append a job and start draining if the queue was idle."""
        with self._lock:
            if self._state is QueueState.ABORTING:
                logger.debug("Discarding %r added while aborting", job)
                self._on_job_discarded(job)
                return
            self._pending.append(job)
            if self._state is QueueState.IDLE:
                self._state = QueueState.BUSY
                self._idle.clear()
            if self._background and self._worker is None:
                self._start_worker()

    def step(self) -> bool:
        """Execute the next pending job.

        Pops the oldest job, executes it outside the lock, then applies
        its result and appends its sub-jobs at the tail of the queue.
        While aborting, the result is still applied but its sub-jobs are
        discarded.

        Returns:
            True if a job was executed, False if there was nothing to do.
        """
        with self._lock:
            job = self._take()
        if job is None:
            return False
        self._execute(job)
        return True

    def run_until_idle(self) -> None:
        """Execute jobs on the calling thread until the queue is empty."""
        while self.step():
            pass

    def _take(self) -> ScanJob | None:
        """Pop the next job and make it current. Called with the lock held."""
        if self._state is not QueueState.BUSY or self._current is not None:
            return None
        if not self._pending:
            self._settle()
            return None
        job = self._pending.popleft()
        self._current = job
        self._on_job_starting(job)
        return job

    def _execute(self, job: ScanJob) -> None:
        try:
            result = job.execute()
        except BaseException:
            with self._lock:
                self._current = None
                try:
                    self._fail(job, [])
                finally:
                    self._settle()
            raise

        with self._lock:
            self._current = None
            try:
                if job.killed:
                    self._on_job_discarded(job)
                elif self._state is QueueState.ABORTING:
                    self._apply_result(job, result)
                    self._discard(result.sub_jobs)
                else:
                    self._apply_result(job, result)
                    self._pending.extend(result.sub_jobs)
            except BaseException:
                self._fail(job, result.sub_jobs)
                raise
            finally:
                self._settle()
                # A foreground step may have run while the worker exited
                if self._background and self._pending and self._worker is None:
                    self._start_worker()

    def _fail(self, job: ScanJob, sub_jobs: list[ScanJob]) -> None:
        """End the busy period as aborted after ``job`` crashed."""
        logger.error("Reading %s failed; aborting scan", job.directory.path)
        self._discard([job, *sub_jobs])
        if self._state is QueueState.BUSY:
            self._state = QueueState.ABORTING
            self._discard(list(self._pending))
            self._pending.clear()

    def _start_worker(self) -> None:
        self._worker = threading.Thread(
            target=self._run,
            name="treescan-job-queue",
            daemon=True,
        )
        self._worker.start()

    def abort(self) -> bool:
        """Abort the current scan.

        Pending jobs are discarded without executing. A job that is
        executing finishes its listing; its entries are kept but
        its sub-jobs are discarded.

        Returns:
            True if an abort was started, False if the queue was idle.
        """
        with self._lock:
            if self._state is QueueState.IDLE:
                return False
            if self._state is QueueState.BUSY:
                logger.info("Aborting scan with %d pending jobs", len(self._pending))
                self._state = QueueState.ABORTING
                self._discard(list(self._pending))
                self._pending.clear()
            self._settle()
            return True

    def kill_subtree(self, node: FileInfo) -> None:
        """Drop all jobs for ``node`` and its descendants.

        The job currently executing inside the subtree is marked killed
        so that its result is discarded when it returns.
        """

        def inside(job: ScanJob) -> bool:
            return job.directory is node or node.is_ancestor_of(job.directory)

        with self._lock:
            if self._current is not None and inside(self._current):
                self._current.killed = True
            killed = [job for job in self._pending if inside(job)]
            if not killed:
                return
            for job in killed:
                job.killed = True
                self._pending.remove(job)
            logger.debug("Killed %d queued jobs below %s", len(killed), node.path)
            self._settle()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until the queue is idle.

        Returns:
            True if the queue is idle, False if the timeout expired.
        """
        return self._idle.wait(timeout)

    def _discard(self, jobs: list[ScanJob]) -> None:
        for job in jobs:
            self._on_job_discarded(job)

    def _settle(self) -> None:
        """Go idle once nothing is executing and nothing is left to do."""
        if self._current is not None or self._state is QueueState.IDLE:
            return
        if self._state is QueueState.ABORTING:
            notify = self._on_aborted
        elif not self._pending:
            notify = self._on_finished
        else:
            return
        self._state = QueueState.IDLE
        try:
            notify()
        finally:
            # The callback may have queued new work already
            if self._state is QueueState.IDLE:
                self._idle.set()

    def _run(self) -> None:
        try:
            while True:
                with self._lock:
                    job = self._take()
                    if job is None:
                        # Idle, or a foreground step owns the current job
                        self._worker = None
                        return
                self._execute(job)
        except BaseException:
            with self._lock:
                self._worker = None
            raise
