"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dishid.api.routes import router
from dishid.config import get_settings
from dishid.ml.labels import load_labels
from dishid.ml.model_manager import ModelProvisioner
from dishid.ml.pipeline import DishIdentifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting DishID (device=%s, model=%s, repo=%s, labels=%s)",
        settings.device,
        settings.model_name,
        settings.model_repo_id,
        settings.labels_path,
    )

    labels = load_labels(settings.labels_path)
    labels.check_size(settings.output_size, strict=settings.strict_label_count)

    provisioner = ModelProvisioner(settings)
    app.state.provisioner = provisioner
    app.state.identifier = DishIdentifier(provisioner.handle, labels, settings)
    # Requests arriving before this completes get 503 "Model unavailable".
    provisioner.start()

    logger.info("DishID ready")
    yield

    logger.info("Shutting down DishID")
    provisioner.shutdown()
    logger.info("DishID shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="DishID",
        description="Food photo identification with a locally provisioned classifier",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
