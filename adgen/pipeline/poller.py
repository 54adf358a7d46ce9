"""
Job Poller

Turns an asynchronous backend job into a terminal result the caller can
await: fetch status, stop on SUCCEEDED/FAILED, otherwise sleep and retry
up to a fixed number of attempts.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from adgen.core.config import settings
from adgen.core.exceptions import JobFailedError, PollTimeoutError
from adgen.core.logging import get_logger
from adgen.core.metrics import job_poll_attempts
from adgen.modules.generation.models import Job, JobStatus

logger = get_logger(__name__)

FetchJob = Callable[[str], Awaitable[Job]]


class JobPoller:
    """
    Bounded polling loop.

    Defaults: 2s between fetches, 30 fetches, so at most ~60s of waiting
    per job. No sleep happens after the final fetch.
    """

    def __init__(
        self,
        fetch_job: FetchJob,
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.fetch_job = fetch_job
        self.interval_seconds = settings.JOB_POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.max_attempts = settings.JOB_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.sleep = sleep

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds cannot be negative")

    async def wait(self, job_id: str, job_type: str = "job") -> Job:
        """
        Poll until the job is terminal and return the full record.

        Fetch errors propagate immediately; only non-terminal states are retried.

        Raises:
            PollTimeoutError: no terminal state within max_attempts fetches
        """
        for attempt in range(1, self.max_attempts + 1):
            job = await self.fetch_job(job_id)

            logger.debug(
                "job_poll_attempt",
                job_id=job_id,
                job_type=job_type,
                attempt=attempt,
                status=job.status.value
            )

            if job.is_terminal:
                job_poll_attempts.labels(job_type=job_type).observe(attempt)
                logger.info(
                    "job_terminal",
                    job_id=job_id,
                    job_type=job_type,
                    status=job.status.value,
                    attempts=attempt
                )
                return job

            if attempt < self.max_attempts:
                await self.sleep(self.interval_seconds)

        job_poll_attempts.labels(job_type=job_type).observe(self.max_attempts)
        logger.warning("job_poll_timeout", job_id=job_id, job_type=job_type, attempts=self.max_attempts)
        raise PollTimeoutError(job_id, self.max_attempts)

    async def wait_for_success(self, job_id: str, job_type: str = "job") -> Job:
        """Like wait(), but a FAILED job raises JobFailedError."""
        job = await self.wait(job_id, job_type=job_type)
        if job.status == JobStatus.FAILED:
            raise JobFailedError(job_id, job.error_message)
        return job
