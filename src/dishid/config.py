"""Environment-based configuration for DishID."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from DISHID_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DISHID_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Model shapes
    input_size: int = Field(default=192, ge=1)
    output_size: int = Field(default=2024, ge=1)

    # Model provisioning
    model_name: str = "Dish-Identifier"
    model_repo_id: str | None = None
    model_filename: str = "dish_identifier.onnx"
    model_revision: str | None = None
    models_dir: Path = Path("models")
    bundled_model_path: Path | None = None
    require_unmetered_network: bool = True
    network_metered: bool = False
    update_in_background: bool = True

    # Label table
    labels_path: Path = Path("assets/food_names.csv")
    strict_label_count: bool = False

    # Read output bytes as signed int8 (False = unsigned uint8)
    signed_scores: bool = True

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
