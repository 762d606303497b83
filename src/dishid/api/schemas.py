"""Pydantic request/response schemas for the DishID API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PredictionResponse(BaseModel):
    """The predicted dish for an uploaded image."""

    class_index: int = Field(ge=0)
    score: int = Field(description="Raw quantized score of the winning class")
    label: str
    message: str = Field(description="Human-readable result, 'Predicted food: <label>'")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    model_state: str
    labels_loaded: int


class ModelInfo(BaseModel):
    """Information about the configured classifier model."""

    name: str
    state: str = Field(description="Provisioning state: 'unprovisioned', 'provisioning', 'ready', or 'failed'")
    source: str | None = Field(default=None, description="Where the artifact came from: 'cache', 'remote', or 'bundled'")
    path: str | None = None
    error: str | None = None
    input_size: int
    output_size: int


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
