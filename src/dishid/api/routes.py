"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from dishid.api.middleware import verify_api_key
from dishid.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PredictionResponse,
)
from dishid.errors import (
    EmptyOutput,
    InferenceError,
    InvalidImage,
    LabelIndexOutOfRange,
    ModelNotReady,
)

if TYPE_CHECKING:
    from dishid.config import Settings
    from dishid.ml.model_manager import ModelProvisioner
    from dishid.ml.pipeline import DishIdentifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_provisioner(request: Request) -> ModelProvisioner:
    provisioner: ModelProvisioner = request.app.state.provisioner
    return provisioner


def _get_identifier(request: Request) -> DishIdentifier:
    identifier: DishIdentifier = request.app.state.identifier
    return identifier


def _model_info(request: Request) -> ModelInfo:
    settings = _get_settings(request)
    provisioner = _get_provisioner(request)
    handle = provisioner.handle
    path = handle.path
    source = handle.source
    return ModelInfo(
        name=provisioner.spec.name,
        state=handle.state.value,
        source=source.value if source is not None else None,
        path=str(path) if path is not None else None,
        error=handle.error,
        input_size=settings.input_size,
        output_size=settings.output_size,
    )


@router.post(
    "/identify",
    response_model=PredictionResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Identify the dish in an image",
)
def identify(request: Request, file: UploadFile) -> PredictionResponse:
    """Classify an uploaded photo and return the predicted food."""
    settings = _get_settings(request)
    data = file.file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    try:
        prediction = _get_identifier(request).identify_bytes(data)
    except InvalidImage as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ModelNotReady as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Model unavailable") from exc
    except (InferenceError, EmptyOutput, LabelIndexOutOfRange) as exc:
        logger.exception("Identification failed for %s", file.filename)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    logger.info("%s -> %s", file.filename, prediction.message)
    return PredictionResponse(
        class_index=prediction.class_index,
        score=prediction.score,
        label=prediction.label,
        message=prediction.message,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    return HealthResponse(
        status="ok",
        model_state=_get_provisioner(request).handle.state.value,
        labels_loaded=len(_get_identifier(request).labels),
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List the configured model",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the classifier model and its provisioning status."""
    return ModelsResponse(models=[_model_info(request)])


@router.post(
    "/models/provision",
    response_model=ModelInfo,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-trigger model provisioning",
)
async def provision_model(request: Request) -> ModelInfo:
    """Start provisioning if the model is not ready and no attempt is running."""
    _get_provisioner(request).start()
    return _model_info(request)
