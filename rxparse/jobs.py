"""In-memory tracking of asynchronous jobs.

The registry owns every job record: creation, lookup, update and
time-based eviction of finished jobs. Records live only in process memory.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Union

from .schemas import ParserResultScore, Prescription

logger = logging.getLogger(__name__)

JobResult = Union[Prescription, ParserResultScore, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Where a job is in its lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


@dataclass
class Job:
    """A tracked unit of asynchronous work."""
    id: str
    type: str
    reference: str
    status: JobStatus
    started_at: datetime
    completed_at: datetime | None = None
    error: str = ""
    result: JobResult = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view used by the polling endpoint."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "reference": self.reference,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
        }
        if self.completed_at is not None:
            data["completed_at"] = self.completed_at.isoformat()
        if self.error:
            data["error"] = self.error
        data["result"] = self.result.model_dump(mode="json") if self.result is not None else None
        return data


class JobRegistry:
    """Thread-safe ledger of job records.

    All mutation happens under a single lock and readers receive deep
    copies, so a poll never observes a half-applied update.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._reaper: asyncio.Task | None = None

    def create_job(self, job_type: str, reference: str) -> str:
        """Register a new pending job and return its id."""
        with self._lock:
            job_id = str(uuid.uuid4())
            while job_id in self._jobs:
                job_id = str(uuid.uuid4())
            self._jobs[job_id] = Job(
                id=job_id,
                type=job_type,
                reference=reference,
                status=JobStatus.PENDING,
                started_at=self._clock(),
            )
        return job_id

    def get_job(self, job_id: str) -> Job | None:
        """Return a snapshot of the job, or None when it does not exist."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def update_job(
        self,
        job_id: str,
        status: JobStatus,
        error: BaseException | str | None = None,
        result: JobResult = None,
    ) -> bool:
        """Apply a status change.

        The result is always overwritten, including with None, so a second
        update on a finished job replaces its payload (last write wins).

        Returns:
            False if the job does not exist
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False

            job.status = status
            if status.is_terminal and job.completed_at is None:
                job.completed_at = self._clock()
            if error is not None:
                job.error = str(error)
            job.result = result
        return True

    def cleanup_older_than(self, older_than: timedelta) -> int:
        """Remove finished jobs completed before now - older_than.

        Pending and processing jobs are never removed.

        Returns:
            Number of removed jobs
        """
        with self._lock:
            threshold = self._clock() - older_than
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal
                and job.completed_at is not None
                and job.completed_at < threshold
            ]
            for job_id in stale:
                del self._jobs[job_id]

        if stale:
            logger.info(f"Cleaned up {len(stale)} old jobs")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def start_reaper(self, interval_seconds: float, retention_seconds: float) -> asyncio.Task:
        """Start the background sweep on the running event loop."""
        if self._reaper is not None and not self._reaper.done():
            return self._reaper
        self._reaper = asyncio.create_task(
            self._reap_forever(interval_seconds, timedelta(seconds=retention_seconds)),
            name="job-registry-reaper",
        )
        logger.debug(
            f"Job reaper started (interval={interval_seconds}s, retention={retention_seconds}s)"
        )
        return self._reaper

    async def stop_reaper(self) -> None:
        """Cancel the background sweep and wait for it to exit."""
        reaper, self._reaper = self._reaper, None
        if reaper is None:
            return
        reaper.cancel()
        try:
            await reaper
        except asyncio.CancelledError:
            pass

    async def _reap_forever(self, interval_seconds: float, retention: timedelta) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup_older_than(retention)
