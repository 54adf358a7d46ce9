"""
Job Submitter

Starts background-removal and compose jobs on the backend and reads
job status records for the poller.
"""

from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from adgen.core.config import settings
from adgen.core.exceptions import JobRequestError
from adgen.core.http import BackendClient
from adgen.core.logging import get_logger
from adgen.modules.generation.models import Job

logger = get_logger(__name__)

REMOVE_BG_PATH = "/generate/remove-bg"
COMPOSE_PATH = "/compose/compose"


def job_status_path(job_id: str) -> str:
    return f"/generate/jobs/{job_id}"


def build_compose_prompt(suffix: Optional[str] = None, base: Optional[str] = None) -> str:
    """
    Fixed instruction, then the trimmed user suffix after a single space.

    An empty or whitespace-only suffix is left out entirely.
    """
    base = base if base is not None else settings.COMPOSE_BASE_PROMPT
    suffix = (suffix or "").strip()
    if not suffix:
        return base
    return f"{base} {suffix}"


def _parse_job(data: Any, context: str) -> Job:
    if not isinstance(data, dict):
        raise JobRequestError(f"{context} response is not an object")
    try:
        return Job.model_validate(data)
    except PydanticValidationError as e:
        raise JobRequestError(f"{context} response could not be parsed: {e.errors()[0]['msg']}")


class JobSubmitter:

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def submit_background_removal(self, file_id: int) -> str:
        """Start a remove-bg job for an uploaded file and return its job id."""
        data = await self.backend.post(
            REMOVE_BG_PATH,
            json={"fileId": file_id},
            error_cls=JobRequestError
        )

        job_id = data.get("jobId") if isinstance(data, dict) else None
        if job_id is None or job_id == "" or isinstance(job_id, bool):
            raise JobRequestError("remove-bg response did not include a jobId")

        logger.info("remove_bg_submitted", file_id=file_id, job_id=job_id)
        return str(job_id)

    async def submit_compose(self, product_file_id: int, model_file_id: int, prompt_text: str) -> Job:
        """
        Request a composition of the product cut-out with the model image.

        The backend usually answers with a terminal result directly; when it
        does not, the returned record carries a jobId to poll.
        """
        data = await self.backend.post(
            COMPOSE_PATH,
            json={
                "productFileId": product_file_id,
                "modelFileId": model_file_id,
                "customPrompt": prompt_text,
            },
            error_cls=JobRequestError
        )

        job = _parse_job(data, "compose")
        logger.info(
            "compose_submitted",
            product_file_id=product_file_id,
            model_file_id=model_file_id,
            job_id=job.job_id,
            status=job.status.value
        )
        return job

    async def get_job(self, job_id: str) -> Job:
        """Fetch the current status record of a job."""
        data = await self.backend.get(job_status_path(job_id), error_cls=JobRequestError)
        job = _parse_job(data, f"job {job_id}")
        if job.job_id is None:
            job.job_id = job_id
        return job
