"""
Ad Generation Models

Backend job records, point ledger payloads, the PipelineRun state
tracked by the orchestrator, and the events handed to callers.
"""

import io
import uuid
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from adgen.core.exceptions import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackendModel(BaseModel):
    """Base for payloads that arrive in the backend's camelCase shape."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Jobs
# =============================================================================

class JobStatus(str, Enum):
    """Backend job states."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class Job(BackendModel):
    """
    One asynchronous backend unit of work.

    Only the backend moves `status`; the client just observes it.
    """
    job_id: Optional[str] = Field(default=None, alias="jobId")
    status: JobStatus
    input_file_id: Optional[int] = Field(default=None, alias="inputFileId")
    result_file_id: Optional[int] = Field(default=None, alias="resultFileId")
    result_file_url: Optional[str] = Field(default=None, alias="resultFileUrl")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    @field_validator("job_id", mode="before")
    @classmethod
    def coerce_job_id(cls, v):
        return None if v is None else str(v)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# =============================================================================
# Points
# =============================================================================

class PointBalance(BackendModel):
    available_points: int = Field(default=0, alias="availablePoints")
    pending_points: int = Field(default=0, alias="pendingPoints")
    total_earned_points: int = Field(default=0, alias="totalEarnedPoints")
    total_used_points: int = Field(default=0, alias="totalUsedPoints")


class PointCheck(BaseModel):
    sufficient: bool
    current_balance: int


class PointUseResult(BackendModel):
    """Transaction returned by a successful deduction."""
    transaction_id: Optional[int] = Field(default=None, alias="id")
    amount: int
    balance_before: Optional[int] = Field(default=None, alias="balanceBefore")
    balance_after: int = Field(alias="balanceAfter")
    referer_id: Optional[int] = Field(default=None, alias="refererId")

    @property
    def remaining_points(self) -> int:
        return self.balance_after


# =============================================================================
# Inputs
# =============================================================================

class SelectedModel(BackendModel):
    """The marketplace model the product is composited with."""
    id: str
    name: str = ""
    seed_value: Optional[str] = Field(default=None, alias="seedValue")
    file_id: Optional[int] = Field(default=None, alias="fileId")
    price: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("seed_value", mode="before")
    @classmethod
    def coerce_seed_value(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("price", mode="before")
    @classmethod
    def default_price(cls, v):
        return 0 if v is None else v


class ProductImage(BaseModel):
    """Product photo bytes plus the upload metadata derived from them."""
    data: bytes = Field(repr=False)
    filename: str
    content_type: str

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        filename: Optional[str] = None,
        max_size_bytes: Optional[int] = None
    ) -> "ProductImage":
        """Validate image bytes with Pillow and derive filename/content type."""
        if not data:
            raise ValidationError("Product image is empty", field="file")

        if max_size_bytes is not None and len(data) > max_size_bytes:
            size_mb = len(data) / (1024 * 1024)
            max_mb = max_size_bytes / (1024 * 1024)
            raise ValidationError(
                f"Image size ({size_mb:.2f}MB) exceeds maximum allowed size ({max_mb:.0f}MB)",
                field="file"
            )

        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
                image_format = img.format
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValidationError(f"Product image could not be decoded: {e}", field="file")

        image_format = (image_format or "PNG").upper()
        content_type = Image.MIME.get(image_format, "application/octet-stream")
        if not filename:
            filename = f"product.{image_format.lower()}"

        return cls(data=data, filename=filename, content_type=content_type)


# =============================================================================
# Pipeline Run
# =============================================================================

class PipelineStage(str, Enum):
    """Orchestrator states."""
    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    REMOVING_BACKGROUND = "REMOVING_BACKGROUND"
    COMPOSING = "COMPOSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.COMPLETED, PipelineStage.FAILED)


class PipelineCompleted(BaseModel):
    """Handed to the caller when a run completes."""
    run_id: str
    original_image_ref: int
    generated_image_url: str
    result_file_id: int
    prompt_suffix_used: Optional[str] = None
    points_used: int = 0
    remaining_points: Optional[int] = None


class PipelineFailed(BaseModel):
    """Handed to the caller when a run fails."""
    run_id: str
    stage: PipelineStage
    error_kind: str
    message: str
    detail: Optional[str] = None


class PipelineRun(BaseModel):
    """
    One end-to-end generation attempt.

    Owned by a single orchestrator call; a retry is always a new run.
    """
    model_config = ConfigDict(protected_namespaces=())

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    model_id: str
    stage: PipelineStage = PipelineStage.IDLE
    stage_history: List[PipelineStage] = Field(default_factory=list)

    # Product image: uploaded original, then the background-removed file
    product_file_id: Optional[int] = None
    cutout_file_id: Optional[int] = None
    model_file_id: Optional[int] = None
    prompt_suffix: Optional[str] = None

    points_reserved: int = 0
    remaining_points: Optional[int] = None

    final_image_url: Optional[str] = None
    final_file_id: Optional[int] = None

    result: Optional[PipelineCompleted] = None
    failure: Optional[PipelineFailed] = None

    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    _error: Optional[BaseException] = PrivateAttr(default=None)

    def advance(self, stage: PipelineStage):
        """Move to the next stage, remembering the one we left."""
        if self.stage.is_terminal:
            raise RuntimeError(f"Run {self.run_id} is already {self.stage.value}")
        self.stage_history.append(self.stage)
        self.stage = stage

    def mark_completed(self, event: PipelineCompleted):
        self.final_image_url = event.generated_image_url
        self.final_file_id = event.result_file_id
        self.result = event
        self.advance(PipelineStage.COMPLETED)
        self.finished_at = _utcnow()

    def mark_failed(self, event: PipelineFailed, error: Optional[BaseException] = None):
        self.failure = event
        self._error = error
        self.advance(PipelineStage.FAILED)
        self.finished_at = _utcnow()

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that ended a failed run."""
        return self._error

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or _utcnow()
        return (end - self.started_at).total_seconds()

    def summary(self) -> Dict[str, Any]:
        """Loggable view of the run."""
        return {
            "run_id": self.run_id,
            "stage": self.stage.value,
            "model_id": self.model_id,
            "product_file_id": self.product_file_id,
            "cutout_file_id": self.cutout_file_id,
            "model_file_id": self.model_file_id,
            "points_reserved": self.points_reserved,
            "final_file_id": self.final_file_id,
        }
