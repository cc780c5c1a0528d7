"""
In-memory state management for conversion jobs.

This module owns the mutable state of every running job:
- Each job moves through a fixed state machine and never moves backward
- Writes for a job come from the single worker that owns it
- Reads (progress polls) may race with that worker; every access goes
  through one lock and returns a copy
- Jobs expire a fixed time after creation, whether or not anyone polled them
"""

import dataclasses
import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import DuplicateJobError, JobStateError, NotFoundError
from ..models import Job, JobStatus, ProgressEvent, SynthesisOutcome

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 60 * 60

ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.EXTRACTING: frozenset({JobStatus.SYNTHESIZING, JobStatus.FAILED}),
    JobStatus.SYNTHESIZING: frozenset({JobStatus.SAVING, JobStatus.FAILED}),
    JobStatus.SAVING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


class JobTracker:
    """Thread-safe keyed store of job state machines."""

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the job tracker.

        Args:
            retention_seconds: How long a job stays reachable after creation
            clock: Returns the current time in epoch seconds
        """
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job_id: Optional[str] = None) -> Job:
        """
        Register a new job in the extracting state.

        Args:
            job_id: Identifier to use (default: a fresh random id)

        Returns:
            Snapshot of the new job

        Raises:
            DuplicateJobError: If the id is already tracked
        """
        job_id = job_id or new_job_id()
        with self._lock:
            self._evict_if_expired(job_id)
            if job_id in self._jobs:
                raise DuplicateJobError(f"Job {job_id} already exists")

            job = Job(job_id=job_id, start_time=self.clock())
            self._jobs[job_id] = job
            logger.info(f"Job {job_id} created ({job.status.value})")
            return self._snapshot(job)

    def set_status(self, job_id: str, status: JobStatus, total: Optional[int] = None) -> None:
        """
        Move a job to a new status.

        Args:
            job_id: Job identifier
            status: Target status
            total: Number of records, set when entering synthesizing

        Raises:
            JobStateError: If the transition is not allowed
            NotFoundError: If the job is absent or evicted
        """
        with self._lock:
            job = self._require(job_id)
            self._transition(job, status)
            if total is not None:
                if total < 0:
                    raise JobStateError(f"Job {job_id}: total must not be negative")
                job.total = total

    def record_progress(self, job_id: str, completed: int, current: Optional[str]) -> None:
        """
        Record how many records have been attempted.

        Raises:
            JobStateError: If the job is not synthesizing or the count regresses
            NotFoundError: If the job is absent or evicted
        """
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.SYNTHESIZING:
                raise JobStateError(f"Job {job_id}: progress reported while {job.status.value}")
            if completed < job.completed:
                raise JobStateError(f"Job {job_id}: progress went from {job.completed} back to {completed}")
            if completed > job.total:
                raise JobStateError(f"Job {job_id}: progress {completed} exceeds total {job.total}")

            job.completed = completed
            job.current = current

    def progress_listener(self, job_id: str) -> Callable[[ProgressEvent], None]:
        """
        Consumer for the batch processor's progress events.

        Events for a job that has already been evicted are dropped.
        """

        def on_progress(event: ProgressEvent) -> None:
            try:
                self.record_progress(job_id, event.completed, event.current)
            except NotFoundError:
                logger.warning(f"Dropping progress for evicted job {job_id}")

        return on_progress

    def complete(self, job_id: str, library_ref: str, outcomes: Sequence[SynthesisOutcome]) -> None:
        """Mark a job completed with its archived library entry."""
        with self._lock:
            job = self._require(job_id)
            self._transition(job, JobStatus.COMPLETED)
            job.library_ref = library_ref
            job.outcomes = list(outcomes)
            job.completed = job.total
            job.current = None

    def fail(self, job_id: str, error_message: str, outcomes: Optional[Sequence[SynthesisOutcome]] = None) -> None:
        """
        Mark a job failed.

        Args:
            job_id: Job identifier
            error_message: Human-readable reason shown to clients
            outcomes: Per-record results, when synthesis already finished
        """
        with self._lock:
            job = self._require(job_id)
            self._transition(job, JobStatus.FAILED)
            job.error = error_message
            if outcomes is not None:
                job.outcomes = list(outcomes)

    def get(self, job_id: str) -> Job:
        """
        Get a snapshot of a job.

        Raises:
            NotFoundError: If the job is absent or evicted
        """
        with self._lock:
            return self._snapshot(self._require(job_id))

    def list_jobs(self) -> List[Job]:
        """Snapshots of all live jobs, newest first."""
        with self._lock:
            now = self.clock()
            jobs = [self._snapshot(job) for job in self._jobs.values() if not self._is_expired(job, now)]
        jobs.sort(key=lambda job: job.start_time, reverse=True)
        return jobs

    def sweep(self) -> int:
        """
        Evict every expired job.

        Returns:
            Number of jobs evicted
        """
        with self._lock:
            now = self.clock()
            expired = [job_id for job_id, job in self._jobs.items() if self._is_expired(job, now)]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired job(s)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _transition(self, job: Job, status: JobStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise JobStateError(f"Job {job.job_id}: illegal transition {job.status.value} -> {status.value}")

        job.status = status
        if status.is_terminal:
            job.end_time = self.clock()
        logger.info(f"Job {job.job_id} -> {status.value}")

    def _require(self, job_id: str) -> Job:
        self._evict_if_expired(job_id)
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def _evict_if_expired(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None and self._is_expired(job, self.clock()):
            del self._jobs[job_id]
            logger.info(f"Job {job_id} expired")

    def _is_expired(self, job: Job, now: float) -> bool:
        return now - job.start_time >= self.retention_seconds

    @staticmethod
    def _snapshot(job: Job) -> Job:
        return dataclasses.replace(job, outcomes=list(job.outcomes))
