"""
Generate Endpoint - Product Photo to Advertisement

POST /api/v1/generate - Run one full pipeline for the caller's session:
1. Check and deduct points for the selected model
2. Upload the product photo and remove its background
3. Compose it with the model image and return the result
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError as PydanticValidationError

from adgen.api.dependencies import RunRegistry, get_orchestrator, get_run_registry, get_session_key
from adgen.core.exceptions import ValidationError
from adgen.core.logging import get_logger
from adgen.modules.generation.models import PipelineCompleted, SelectedModel
from adgen.pipeline.orchestrator import PipelineOrchestrator

logger = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=PipelineCompleted)
async def generate_ad(
    file: UploadFile = File(..., description="Product photo"),
    model: str = Form(..., description="Selected model as JSON: {id, seedValue?, fileId?, price?}"),
    prompt_suffix: Optional[str] = Form(None, description="Extra instruction appended to the compose prompt"),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    registry: RunRegistry = Depends(get_run_registry),
    session_key: str = Depends(get_session_key)
):
    """
    Generate an advertisement image.

    Blocks until the run is terminal (worst case roughly two poll ceilings).
    Failures are returned as structured errors carrying the failed stage;
    points deducted before a failure are not refunded.
    """
    try:
        selected = SelectedModel.model_validate_json(model)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid model payload: {e.errors()[0]['msg']}", field="model")

    image_bytes = await file.read()

    logger.info(
        "generate_request_received",
        model_id=selected.id,
        input_size=len(image_bytes),
        has_prompt_suffix=bool(prompt_suffix and prompt_suffix.strip())
    )

    async with registry.claim(session_key):
        run = await orchestrator.start(
            image_bytes,
            selected,
            prompt_suffix=prompt_suffix,
            filename=file.filename
        )

    if run.failure is not None:
        raise run.error

    return run.result
