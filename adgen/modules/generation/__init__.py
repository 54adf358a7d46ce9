"""
Generation Module

Wire models for backend jobs, points and selected models, plus the
per-run state and completion/failure events.
"""

from adgen.modules.generation.models import (
    Job,
    JobStatus,
    PipelineCompleted,
    PipelineFailed,
    PipelineRun,
    PipelineStage,
    SelectedModel,
)

__all__ = [
    "Job",
    "JobStatus",
    "PipelineCompleted",
    "PipelineFailed",
    "PipelineRun",
    "PipelineStage",
    "SelectedModel",
]
