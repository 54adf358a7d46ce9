"""
Pipeline Orchestrator

Runs one product-photo-to-advertisement generation:

    IDLE --(points ok, deducted)--> UPLOADING --> REMOVING_BACKGROUND
         --> COMPOSING --> COMPLETED

Any failure moves the run to FAILED and ends it. Nothing is retried,
resumed or refunded; points deducted in IDLE stay deducted. A new
start() is a new run with its own deduction.
"""

import inspect
from typing import Any, Callable, Optional, Union

from adgen.clients.files import AssetUploadClient
from adgen.clients.jobs import JobSubmitter, build_compose_prompt
from adgen.clients.models import ModelDetailClient
from adgen.clients.points import PointLedgerClient
from adgen.core.config import settings
from adgen.core.exceptions import (
    AdGenBaseException,
    ComposeError,
    InsufficientPointsError,
    JobFailedError,
    LedgerError,
    PollTimeoutError,
    UploadError,
    ValidationError,
)
from adgen.core.http import BackendClient
from adgen.core.logging import LogContext, get_logger
from adgen.core.metrics import record_run_finished, record_run_started, track_stage_latency
from adgen.modules.generation.models import (
    Job,
    JobStatus,
    PipelineCompleted,
    PipelineFailed,
    PipelineRun,
    PipelineStage,
    ProductImage,
    SelectedModel,
)
from adgen.pipeline.poller import JobPoller
from adgen.pipeline.resolver import ModelAssetResolver

logger = get_logger(__name__)

Callback = Callable[[Any], Any]


# =============================================================================
# User-facing failure messages
# =============================================================================

MESSAGE_NOT_ENOUGH_POINTS = "Not enough points to use this model."
MESSAGE_LEDGER_FAILED = "Your points could not be checked or used. Please try again."
MESSAGE_UPLOAD_FAILED = "Upload failed. Please try again."
MESSAGE_REMOVE_BG_FAILED = "Background removal failed."
MESSAGE_REMOVE_BG_TIMEOUT = "Background removal timed out."
MESSAGE_COMPOSE_FAILED = "Composition failed."
MESSAGE_COMPOSE_TIMEOUT = "Composition timed out."
MESSAGE_GENERIC = "Ad generation failed."


def user_message(exc: BaseException, stage: PipelineStage) -> str:
    """Human-readable message for a failure at `stage`."""
    if isinstance(exc, InsufficientPointsError):
        return MESSAGE_NOT_ENOUGH_POINTS
    if isinstance(exc, LedgerError):
        return MESSAGE_LEDGER_FAILED
    if isinstance(exc, UploadError) or stage == PipelineStage.UPLOADING:
        return MESSAGE_UPLOAD_FAILED

    timed_out = isinstance(exc, PollTimeoutError)
    if stage == PipelineStage.REMOVING_BACKGROUND:
        return MESSAGE_REMOVE_BG_TIMEOUT if timed_out else MESSAGE_REMOVE_BG_FAILED
    if stage == PipelineStage.COMPOSING:
        return MESSAGE_COMPOSE_TIMEOUT if timed_out else MESSAGE_COMPOSE_FAILED
    return MESSAGE_GENERIC


async def _notify(callback: Optional[Callback], payload: Any):
    if callback is None:
        return
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


# =============================================================================
# Orchestrator
# =============================================================================

class PipelineOrchestrator:
    """
    Sequences points, upload, background removal and compose.

    Holds no per-run state: each start() builds a fresh PipelineRun.
    Only one run per user session should be in flight; that is up to the
    caller, the orchestrator does not lock.
    """

    def __init__(
        self,
        ledger: PointLedgerClient,
        uploader: AssetUploadClient,
        jobs: JobSubmitter,
        resolver: ModelAssetResolver,
        poller: Optional[JobPoller] = None,
        on_complete: Optional[Callback] = None,
        on_failed: Optional[Callback] = None,
        on_stage_change: Optional[Callback] = None,
        compose_base_prompt: Optional[str] = None,
        max_image_size_bytes: Optional[int] = None,
        max_prompt_suffix_length: Optional[int] = None
    ):
        self.ledger = ledger
        self.uploader = uploader
        self.jobs = jobs
        self.resolver = resolver
        self.poller = poller or JobPoller(jobs.get_job)
        self.on_complete = on_complete
        self.on_failed = on_failed
        self.on_stage_change = on_stage_change
        self.compose_base_prompt = compose_base_prompt
        self.max_image_size_bytes = max_image_size_bytes or settings.MAX_IMAGE_SIZE_BYTES
        self.max_prompt_suffix_length = max_prompt_suffix_length or settings.MAX_PROMPT_SUFFIX_LENGTH

    @classmethod
    def from_backend(cls, backend: BackendClient, **kwargs) -> "PipelineOrchestrator":
        """Wire every collaborator to the same backend client."""
        jobs = JobSubmitter(backend)
        return cls(
            ledger=PointLedgerClient(backend),
            uploader=AssetUploadClient(backend),
            jobs=jobs,
            resolver=ModelAssetResolver.default(ModelDetailClient(backend)),
            **kwargs
        )

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def start(
        self,
        image: Union[bytes, ProductImage],
        model: SelectedModel,
        prompt_suffix: Optional[str] = None,
        filename: Optional[str] = None
    ) -> PipelineRun:
        """
        Run the whole pipeline and return the terminal PipelineRun.

        Pipeline failures end up on `run.failure` (and on_failed); they are
        not raised. Bad input raises ValidationError before any run exists.
        """
        product = self._validate(image, model, prompt_suffix, filename)
        suffix = (prompt_suffix or "").strip() or None

        run = PipelineRun(model_id=model.id, prompt_suffix=suffix)
        record_run_started()

        with LogContext(run_id=run.run_id, stage=run.stage.value) as log_ctx:
            logger.info(
                "pipeline_started",
                model_id=model.id,
                price=model.price,
                input_size=len(product.data)
            )

            try:
                event = await self._execute(run, product, model, log_ctx)
            except AdGenBaseException as e:
                await self._fail(run, e, log_ctx)
                return run
            except Exception as e:
                await self._fail(run, e, log_ctx)
                raise

            await self._complete(run, event, log_ctx)

        return run

    def _validate(
        self,
        image: Union[bytes, ProductImage],
        model: SelectedModel,
        prompt_suffix: Optional[str],
        filename: Optional[str]
    ) -> ProductImage:
        if model.price < 0:
            raise ValidationError("Model price cannot be negative", field="price")

        if prompt_suffix and len(prompt_suffix.strip()) > self.max_prompt_suffix_length:
            raise ValidationError(
                f"Prompt suffix exceeds {self.max_prompt_suffix_length} characters",
                field="prompt_suffix"
            )

        if isinstance(image, ProductImage):
            return image
        return ProductImage.from_bytes(image, filename=filename, max_size_bytes=self.max_image_size_bytes)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        run: PipelineRun,
        product: ProductImage,
        model: SelectedModel,
        log_ctx: LogContext
    ) -> PipelineCompleted:
        # IDLE: points come first, before any upload or job
        await self._reserve_points(run, model)

        await self._advance(run, PipelineStage.UPLOADING, log_ctx)
        with track_stage_latency(PipelineStage.UPLOADING.value):
            run.product_file_id = await self.uploader.upload(product)

        await self._advance(run, PipelineStage.REMOVING_BACKGROUND, log_ctx)
        with track_stage_latency(PipelineStage.REMOVING_BACKGROUND.value):
            run.cutout_file_id = await self._remove_background(run.product_file_id)

        await self._advance(run, PipelineStage.COMPOSING, log_ctx)
        with track_stage_latency(PipelineStage.COMPOSING.value):
            run.model_file_id = await self.resolver.resolve(model)
            prompt = build_compose_prompt(run.prompt_suffix, base=self.compose_base_prompt)
            submitted = await self.jobs.submit_compose(run.cutout_file_id, run.model_file_id, prompt)
            composed = await self._await_compose(submitted)

        return PipelineCompleted(
            run_id=run.run_id,
            original_image_ref=run.product_file_id,
            generated_image_url=composed.result_file_url,
            result_file_id=composed.result_file_id,
            prompt_suffix_used=run.prompt_suffix,
            points_used=run.points_reserved,
            remaining_points=run.remaining_points
        )

    async def _reserve_points(self, run: PipelineRun, model: SelectedModel):
        if model.price == 0:
            logger.info("points_skipped", reason="free_model")
            return

        check = await self.ledger.check_sufficient(model.price)
        if not check.sufficient:
            raise InsufficientPointsError(required=model.price, balance=check.current_balance)

        result = await self.ledger.deduct(model.price, model.id, idempotency_key=run.run_id)
        run.points_reserved = model.price
        run.remaining_points = result.remaining_points

    async def _remove_background(self, file_id: int) -> int:
        job_id = await self.jobs.submit_background_removal(file_id)
        job = await self.poller.wait_for_success(job_id, job_type="remove_bg")
        if job.result_file_id is None:
            raise JobFailedError(job_id, "Background removal finished without a result file")
        return job.result_file_id

    async def _await_compose(self, job: Job) -> Job:
        """Use a terminal compose answer as-is; poll only when the backend hands back a pending job."""
        if not job.is_terminal:
            if not job.job_id:
                raise ComposeError(f"Compose returned {job.status.value} without a jobId")
            job = await self.poller.wait_for_success(job.job_id, job_type="compose")
        elif job.status == JobStatus.FAILED:
            raise ComposeError(job.error_message or "Compose request failed")

        if not job.result_file_url or job.result_file_id is None:
            raise ComposeError("Compose finished without a result image")
        return job

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _advance(self, run: PipelineRun, stage: PipelineStage, log_ctx: LogContext):
        previous = run.stage
        run.advance(stage)
        log_ctx.set_stage(stage.value)
        logger.info("stage_changed", previous=previous.value, current=stage.value)
        await _notify(self.on_stage_change, run)

    async def _complete(self, run: PipelineRun, event: PipelineCompleted, log_ctx: LogContext):
        run.mark_completed(event)
        log_ctx.set_stage(run.stage.value)
        record_run_finished("completed", run.duration_seconds)

        logger.info(
            "pipeline_completed",
            result_file_id=event.result_file_id,
            points_used=event.points_used,
            duration_ms=int(run.duration_seconds * 1000)
        )

        await _notify(self.on_stage_change, run)
        await _notify(self.on_complete, event)

    async def _fail(self, run: PipelineRun, exc: BaseException, log_ctx: LogContext):
        failed_stage = run.stage

        if isinstance(exc, AdGenBaseException):
            exc.stage = failed_stage.value
            exc.run_id = run.run_id
            exc.details["user_message"] = user_message(exc, failed_stage)
            error_kind = exc.kind
            detail = exc.message
        else:
            error_kind = type(exc).__name__
            detail = str(exc)

        event = PipelineFailed(
            run_id=run.run_id,
            stage=failed_stage,
            error_kind=error_kind,
            message=user_message(exc, failed_stage),
            detail=detail
        )
        run.mark_failed(event, exc)
        log_ctx.set_stage(run.stage.value)
        record_run_finished("failed", run.duration_seconds, failure_stage=failed_stage.value)

        logger.error(
            "pipeline_failed",
            failed_stage=failed_stage.value,
            error_kind=error_kind,
            error=detail,
            run=run.summary()
        )

        await _notify(self.on_stage_change, run)
        await _notify(self.on_failed, event)
