"""Tests for the DishID HTTP API."""

from __future__ import annotations

import io
import os
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import patch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

import httpx
import numpy as np
import pytest
from fastapi import FastAPI, status
from PIL import Image

from dishid.config import get_settings
from dishid.main import create_app
from dishid.ml.labels import LabelTable
from dishid.ml.model_manager import ModelProvisioner, ModelSource
from dishid.ml.pipeline import DishIdentifier


class _StubEngine:
    def __init__(self, winner: int = 2, size: int = 2024) -> None:
        self.output = np.zeros(size, dtype=np.uint8)
        self.output[winner] = 90

    def run(self, input_buffer: np.ndarray) -> np.ndarray:
        return self.output


def _init_app_state(app: FastAPI, *, ready: bool = True, labels: LabelTable | None = None, **env: str) -> None:
    """Manually initialize app state (ASGITransport does not trigger lifespan)."""
    with patch.dict(os.environ, env):
        settings = get_settings()
    engine = _StubEngine()
    provisioner = ModelProvisioner(settings, engine_factory=lambda path, s: engine)
    if ready:
        provisioner.handle.set_ready(engine, ModelSource.BUNDLED, Path("dish_identifier.onnx"))
    table = labels if labels is not None else LabelTable(["Apple", "Banana", "Pad Thai"])
    app.state.settings = settings
    app.state.provisioner = provisioner
    app.state.identifier = DishIdentifier(provisioner.handle, table, settings)


async def _make_client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
    provisioner: ModelProvisioner = app.state.provisioner
    provisioner.shutdown()


def _jpeg(color: tuple[int, int, int] = (180, 120, 40)) -> io.BytesIO:
    buf = io.BytesIO()
    Image.new("RGB", (320, 240), color=color).save(buf, format="JPEG")
    buf.seek(0)
    return buf


@pytest.fixture()
def app() -> FastAPI:
    """Create a fresh app instance with a ready stub model."""
    application = create_app()
    _init_app_state(application)
    return application


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    async for ac in _make_client(app):
        yield ac


class TestHealthEndpoint:
    async def test_health_returns_ok(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["model_state"] == "ready"
        assert data["labels_loaded"] == 3

    async def test_health_reports_unprovisioned(self) -> None:
        app = create_app()
        _init_app_state(app, ready=False)
        async for ac in _make_client(app):
            response = await ac.get("/api/v1/health")
            assert response.json()["model_state"] == "unprovisioned"


class TestIdentifyEndpoint:
    async def test_identify_returns_prediction(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/identify",
            files={"file": ("dish.jpg", _jpeg(), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "class_index": 2,
            "score": 90,
            "label": "Pad Thai",
            "message": "Predicted food: Pad Thai",
        }

    async def test_identify_invalid_image_returns_400(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/identify",
            files={"file": ("test.jpg", io.BytesIO(b"fake image data"), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_identify_before_model_ready_returns_503(self) -> None:
        app = create_app()
        _init_app_state(app, ready=False)
        async for ac in _make_client(app):
            response = await ac.post(
                "/api/v1/identify",
                files={"file": ("dish.jpg", _jpeg(), "image/jpeg")},
            )
            assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
            assert response.json()["detail"] == "Model unavailable"

    async def test_identify_oversized_upload_returns_413(self) -> None:
        app = create_app()
        _init_app_state(app, DISHID_MAX_FILE_SIZE="100")
        async for ac in _make_client(app):
            response = await ac.post(
                "/api/v1/identify",
                files={"file": ("dish.jpg", _jpeg(), "image/jpeg")},
            )
            assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    async def test_identify_missing_label_returns_500(self) -> None:
        app = create_app()
        _init_app_state(app, labels=LabelTable(["Apple"]))
        async for ac in _make_client(app):
            response = await ac.post(
                "/api/v1/identify",
                files={"file": ("dish.jpg", _jpeg(), "image/jpeg")},
            )
            assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
            assert "outside the label table" in response.json()["detail"]


class TestModelsEndpoint:
    async def test_models_lists_configured_model(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/models")
        assert response.status_code == status.HTTP_200_OK
        (model,) = response.json()["models"]
        assert model["name"] == "Dish-Identifier"
        assert model["state"] == "ready"
        assert model["source"] == "bundled"
        assert model["input_size"] == 192
        assert model["output_size"] == 2024

    async def test_provision_triggers_bundled_load(self, tmp_path: Path) -> None:
        bundled = tmp_path / "dish.onnx"
        bundled.write_bytes(b"onnx")
        app = create_app()
        _init_app_state(app, ready=False, DISHID_BUNDLED_MODEL_PATH=str(bundled))
        async for ac in _make_client(app):
            response = await ac.post("/api/v1/models/provision")
            assert response.status_code == status.HTTP_202_ACCEPTED
            assert response.json()["state"] in ("provisioning", "ready")

            provisioner: ModelProvisioner = app.state.provisioner
            assert provisioner.wait(timeout=5) is True

            response = await ac.get("/api/v1/models")
            assert response.json()["models"][0]["state"] == "ready"

    async def test_provision_failure_reported(self) -> None:
        app = create_app()
        _init_app_state(app, ready=False)
        async for ac in _make_client(app):
            await ac.post("/api/v1/models/provision")
            provisioner: ModelProvisioner = app.state.provisioner
            assert provisioner.wait(timeout=5) is False

            model = (await ac.get("/api/v1/models")).json()["models"][0]
            assert model["state"] == "failed"
            assert model["error"]


class TestAuthentication:
    async def test_no_auth_required_by_default(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK

    async def test_auth_required_when_api_key_set(self) -> None:
        app = create_app()
        _init_app_state(app, DISHID_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get("/api/v1/health")
            assert response.status_code == status.HTTP_401_UNAUTHORIZED

    async def test_auth_passes_with_bearer_key(self) -> None:
        app = create_app()
        _init_app_state(app, DISHID_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get(
                "/api/v1/health",
                headers={"Authorization": "Bearer test-secret-key"},
            )
            assert response.status_code == status.HTTP_200_OK

    async def test_auth_passes_with_api_key_header(self) -> None:
        app = create_app()
        _init_app_state(app, DISHID_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get("/api/v1/health", headers={"X-API-Key": "test-secret-key"})
            assert response.status_code == status.HTTP_200_OK

    async def test_auth_fails_with_wrong_key(self) -> None:
        app = create_app()
        _init_app_state(app, DISHID_API_KEY="test-secret-key")
        async for ac in _make_client(app):
            response = await ac.get(
                "/api/v1/health",
                headers={"Authorization": "Bearer wrong-key"},
            )
            assert response.status_code == status.HTTP_401_UNAUTHORIZED
