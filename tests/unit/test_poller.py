import pytest

from adgen.core.exceptions import JobFailedError, JobRequestError, PollTimeoutError
from adgen.modules.generation.models import Job, JobStatus
from adgen.pipeline.poller import JobPoller


class ScriptedJob:
    """fetch_job stand-in returning the scripted statuses in order (last repeats)."""

    def __init__(self, *statuses: JobStatus, error_message=None):
        self.statuses = list(statuses)
        self.error_message = error_message
        self.calls = []

    async def __call__(self, job_id: str) -> Job:
        self.calls.append(job_id)
        status = self.statuses[min(len(self.calls), len(self.statuses)) - 1]
        return Job(
            jobId=job_id,
            status=status,
            resultFileId=10 if status == JobStatus.SUCCEEDED else None,
            errorMessage=self.error_message if status == JobStatus.FAILED else None
        )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_poller_returns_on_kth_fetch_after_k_minus_one_delays():
    fetch = ScriptedJob(JobStatus.PENDING, JobStatus.RUNNING, JobStatus.RUNNING, JobStatus.SUCCEEDED)
    sleep = RecordingSleep()
    poller = JobPoller(fetch, interval_seconds=2.0, max_attempts=30, sleep=sleep)

    job = await poller.wait("job-1")

    assert job.status == JobStatus.SUCCEEDED
    assert job.result_file_id == 10
    assert len(fetch.calls) == 4
    assert sleep.delays == [2.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_poller_terminal_on_first_fetch_never_sleeps():
    fetch = ScriptedJob(JobStatus.SUCCEEDED)
    sleep = RecordingSleep()
    poller = JobPoller(fetch, interval_seconds=2.0, max_attempts=30, sleep=sleep)

    await poller.wait("job-1")

    assert len(fetch.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_poller_times_out_after_exactly_max_attempts():
    fetch = ScriptedJob(JobStatus.RUNNING)
    sleep = RecordingSleep()
    poller = JobPoller(fetch, interval_seconds=2.0, max_attempts=30, sleep=sleep)

    with pytest.raises(PollTimeoutError) as exc_info:
        await poller.wait("job-slow")

    assert len(fetch.calls) == 30
    # No delay after the final fetch
    assert len(sleep.delays) == 29
    assert exc_info.value.job_id == "job-slow"
    assert exc_info.value.attempts == 30
    assert exc_info.value.code == 504


@pytest.mark.asyncio
async def test_poller_defaults_come_from_settings():
    fetch = ScriptedJob(JobStatus.PENDING)
    sleep = RecordingSleep()
    poller = JobPoller(fetch, sleep=sleep)

    with pytest.raises(PollTimeoutError):
        await poller.wait("job-1")

    assert len(fetch.calls) == 30
    assert set(sleep.delays) == {2.0}


@pytest.mark.asyncio
async def test_poller_failed_job_is_returned_by_wait():
    fetch = ScriptedJob(JobStatus.RUNNING, JobStatus.FAILED, error_message="model crashed")
    poller = JobPoller(fetch, interval_seconds=0, max_attempts=5, sleep=RecordingSleep())

    job = await poller.wait("job-1")

    assert job.status == JobStatus.FAILED
    assert job.error_message == "model crashed"


@pytest.mark.asyncio
async def test_wait_for_success_raises_job_failed_not_timeout():
    fetch = ScriptedJob(JobStatus.RUNNING, JobStatus.FAILED, error_message="model crashed")
    poller = JobPoller(fetch, interval_seconds=0, max_attempts=5, sleep=RecordingSleep())

    with pytest.raises(JobFailedError) as exc_info:
        await poller.wait_for_success("job-1")

    assert not isinstance(exc_info.value, PollTimeoutError)
    assert exc_info.value.job_id == "job-1"
    assert exc_info.value.message == "model crashed"
    assert len(fetch.calls) == 2


@pytest.mark.asyncio
async def test_poller_fetch_error_propagates_without_retry():
    calls = []

    async def broken_fetch(job_id):
        calls.append(job_id)
        raise JobRequestError("status endpoint down", http_status=503)

    sleep = RecordingSleep()
    poller = JobPoller(broken_fetch, interval_seconds=2.0, max_attempts=30, sleep=sleep)

    with pytest.raises(JobRequestError):
        await poller.wait("job-1")

    assert calls == ["job-1"]
    assert sleep.delays == []


def test_poller_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        JobPoller(ScriptedJob(JobStatus.RUNNING), max_attempts=0)
    with pytest.raises(ValueError):
        JobPoller(ScriptedJob(JobStatus.RUNNING), interval_seconds=-1)
