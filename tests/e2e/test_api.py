import json

import pytest

from adgen.api.dependencies import run_registry, get_session_key

from conftest import envelope

MODEL_JSON = json.dumps({"id": 200, "seedValue": "200", "price": 50})


def generate_form(png_bytes, model=MODEL_JSON, prompt_suffix=None):
    data = {"model": model}
    if prompt_suffix is not None:
        data["prompt_suffix"] = prompt_suffix
    return {
        "files": {"file": ("product.png", png_bytes, "image/png")},
        "data": data,
        "headers": {"Authorization": "Bearer user-token"},
    }


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_lists_endpoints(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["api_v1"] == "/api/v1"


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    response = await client.get("/api/v1/metrics")
    assert response.status_code == 200
    assert "pipeline_stage_latency_seconds" in response.text


@pytest.mark.asyncio
async def test_generate_success(client, happy_backend, png_bytes):
    response = await client.post("/api/v1/generate", **generate_form(png_bytes, prompt_suffix="on marble"))

    assert response.status_code == 200
    data = response.json()
    assert data["generated_image_url"] == "https://cdn.test/url/11"
    assert data["result_file_id"] == 11
    assert data["original_image_ref"] == 9
    assert data["prompt_suffix_used"] == "on marble"
    assert data["points_used"] == 50
    assert data["remaining_points"] == 50
    assert "X-Process-Time" in response.headers
    # Caller's token reached the backend
    request = happy_backend.calls("POST", "/points/use")[0]
    assert request.headers["Authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_generate_accepts_numeric_seed_value(client, happy_backend, png_bytes):
    model = json.dumps({"id": 200, "seedValue": 777, "price": 50})

    response = await client.post("/api/v1/generate", **generate_form(png_bytes, model=model))

    assert response.status_code == 200
    assert happy_backend.json_body("POST", "/compose/compose")["modelFileId"] == 777
    assert happy_backend.calls("GET", "/models/200/full-detail") == []


@pytest.mark.asyncio
async def test_generate_insufficient_points(client, fake_backend, png_bytes):
    fake_backend.add("GET", "/points/balance", envelope({"availablePoints": 10}))

    response = await client.post("/api/v1/generate", **generate_form(png_bytes))

    assert response.status_code == 402
    data = response.json()
    assert data["error_kind"] == "InsufficientPointsError"
    assert data["stage"] == "IDLE"
    assert data["run_id"]
    assert data["details"]["required"] == 50
    assert data["details"]["balance"] == 10
    assert data["details"]["user_message"] == "Not enough points to use this model."
    assert fake_backend.calls("POST", "/files") == []


@pytest.mark.asyncio
async def test_generate_remove_bg_failure_reports_stage(client, happy_backend, png_bytes):
    happy_backend.add(
        "GET", "/generate/jobs/job-1",
        envelope({"jobId": "job-1", "status": "FAILED", "errorMessage": "segmentation failed"})
    )

    response = await client.post("/api/v1/generate", **generate_form(png_bytes))

    assert response.status_code == 500
    data = response.json()
    assert data["error_kind"] == "JobFailedError"
    assert data["stage"] == "REMOVING_BACKGROUND"
    assert data["error"] == "segmentation failed"
    assert happy_backend.calls("POST", "/compose/compose") == []


@pytest.mark.asyncio
async def test_generate_rejects_bad_model_json(client, fake_backend, png_bytes):
    response = await client.post("/api/v1/generate", **generate_form(png_bytes, model="{not json"))

    assert response.status_code == 400
    assert response.json()["details"]["field"] == "model"
    assert fake_backend.requests == []


@pytest.mark.asyncio
async def test_generate_rejects_non_image_upload(client, fake_backend):
    response = await client.post("/api/v1/generate", **generate_form(b"plain text"))

    assert response.status_code == 400
    assert fake_backend.requests == []


@pytest.mark.asyncio
async def test_generate_conflict_when_session_busy(client, fake_backend, png_bytes):
    session_key = get_session_key(request=None, token="user-token")

    async with run_registry.claim(session_key):
        response = await client.post("/api/v1/generate", **generate_form(png_bytes))

    assert response.status_code == 409
    assert response.json()["error_kind"] == "PipelineAlreadyRunningError"
    assert fake_backend.requests == []
    assert not run_registry.is_active(session_key)
