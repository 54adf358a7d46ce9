import io

import pytest
from PIL import Image

from adgen.core.exceptions import ValidationError
from adgen.modules.generation.models import (
    Job,
    JobStatus,
    PipelineCompleted,
    PipelineRun,
    PipelineStage,
    ProductImage,
    SelectedModel,
)

from conftest import make_png


def test_product_image_detects_format_and_content_type():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="JPEG")

    image = ProductImage.from_bytes(buffer.getvalue())

    assert image.content_type == "image/jpeg"
    assert image.filename == "product.jpeg"


def test_product_image_keeps_caller_filename():
    image = ProductImage.from_bytes(make_png(), filename="bag.png")

    assert image.filename == "bag.png"
    assert image.content_type == "image/png"


def test_product_image_rejects_oversized_data():
    with pytest.raises(ValidationError) as exc_info:
        ProductImage.from_bytes(make_png(), max_size_bytes=16)

    assert exc_info.value.code == 400


def test_selected_model_accepts_backend_shape():
    model = SelectedModel.model_validate({"id": 200, "name": "Anna", "seedValue": "777", "price": None})

    assert model.id == "200"
    assert model.seed_value == "777"
    assert model.price == 0


def test_selected_model_accepts_numeric_seed_value():
    model = SelectedModel.model_validate_json('{"id": 200, "seedValue": 777, "price": 50}')

    assert model.seed_value == "777"
    assert model.price == 50


def test_job_terminal_states():
    assert Job(jobId=1, status="SUCCEEDED").is_terminal
    assert Job(jobId=1, status="FAILED").is_terminal
    assert not Job(jobId=1, status="PENDING").is_terminal
    assert not Job(jobId=1, status=JobStatus.RUNNING).is_terminal
    assert Job(jobId=1, status="RUNNING").job_id == "1"


def test_run_cannot_leave_a_terminal_stage():
    run = PipelineRun(model_id="200")
    run.advance(PipelineStage.UPLOADING)
    run.mark_completed(PipelineCompleted(
        run_id=run.run_id,
        original_image_ref=9,
        generated_image_url="https://cdn.test/url/11",
        result_file_id=11
    ))

    assert run.stage == PipelineStage.COMPLETED
    assert run.finished_at is not None
    with pytest.raises(RuntimeError):
        run.advance(PipelineStage.COMPOSING)


def test_runs_get_distinct_ids():
    assert PipelineRun(model_id="1").run_id != PipelineRun(model_id="1").run_id
