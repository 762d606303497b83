"""Model provisioning: obtain the classifier artifact and build its engine.

Sources are tried in order: a locally cached copy of the remote artifact,
a fresh download from the HuggingFace Hub (gated by the network policy),
then a bundled asset. Provisioning runs on a background worker; until it
succeeds the shared ModelHandle reports ModelNotReady.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError, LocalEntryNotFoundError

from dishid.errors import InferenceError, ModelNotReady, ProvisioningError
from dishid.ml.classifier import OnnxEngine

if TYPE_CHECKING:
    from collections.abc import Callable

    from dishid.config import Settings
    from dishid.ml.classifier import ClassifierEngine

    EngineFactory = Callable[[Path, Settings], ClassifierEngine]

logger = logging.getLogger(__name__)

_DOWNLOAD_ERRORS = (HfHubHTTPError, LocalEntryNotFoundError, OSError, ValueError)


class ProvisioningState(StrEnum):
    UNPROVISIONED = "unprovisioned"
    PROVISIONING = "provisioning"
    READY = "ready"
    FAILED = "failed"


class ModelSource(StrEnum):
    CACHE = "cache"
    REMOTE = "remote"
    BUNDLED = "bundled"


@dataclass(frozen=True)
class DownloadConditions:
    """Network policy for remote downloads (the server analogue of Wi-Fi only)."""

    require_unmetered: bool = True

    def allows(self, *, metered: bool) -> bool:
        return not (self.require_unmetered and metered)


@dataclass(frozen=True)
class ModelSpec:
    """Where the classifier artifact can be obtained from."""

    name: str
    repo_id: str | None
    filename: str
    revision: str | None
    bundled_path: Path | None


def spec_from_settings(settings: Settings) -> ModelSpec:
    return ModelSpec(
        name=settings.model_name,
        repo_id=settings.model_repo_id,
        filename=settings.model_filename,
        revision=settings.model_revision,
        bundled_path=settings.bundled_model_path,
    )


class ModelHandle:
    """Holder of the optional engine and the provisioning state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = ProvisioningState.UNPROVISIONED
        self._engine: ClassifierEngine | None = None
        self._source: ModelSource | None = None
        self._path: Path | None = None
        self._error: str | None = None

    @property
    def state(self) -> ProvisioningState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state is ProvisioningState.READY

    @property
    def source(self) -> ModelSource | None:
        with self._lock:
            return self._source

    @property
    def path(self) -> Path | None:
        with self._lock:
            return self._path

    @property
    def error(self) -> str | None:
        with self._lock:
            return self._error

    @property
    def engine(self) -> ClassifierEngine:
        """Return the engine, or raise ModelNotReady if none is set."""
        with self._lock:
            if self._engine is None:
                raise ModelNotReady(f"Model is {self._state}")
            return self._engine

    def mark_provisioning(self) -> None:
        with self._lock:
            if self._state is ProvisioningState.READY:
                raise RuntimeError("Model is already provisioned")
            self._state = ProvisioningState.PROVISIONING
            self._error = None

    def set_ready(self, engine: ClassifierEngine, source: ModelSource, path: Path) -> None:
        with self._lock:
            if self._state is ProvisioningState.READY:
                raise RuntimeError("Model is already provisioned")
            self._engine = engine
            self._source = source
            self._path = path
            self._state = ProvisioningState.READY

    def set_failed(self, error: str) -> None:
        with self._lock:
            self._state = ProvisioningState.FAILED
            self._error = error


class ModelProvisioner:
    """Obtains the model artifact and publishes a ready engine on the handle."""

    def __init__(self, settings: Settings, engine_factory: EngineFactory = OnnxEngine) -> None:
        self._settings = settings
        self._spec = spec_from_settings(settings)
        self._conditions = DownloadConditions(require_unmetered=settings.require_unmetered_network)
        self._engine_factory = engine_factory
        self._models_dir = Path(settings.models_dir)

        self._handle = ModelHandle()
        self._lock = threading.Lock()
        self._future: Future[ModelHandle] | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-provisioning")

    # -- Public API ---------------------------------------------------------

    @property
    def handle(self) -> ModelHandle:
        return self._handle

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    def start(self) -> Future[ModelHandle]:
        """Begin provisioning in the background.

        Returns the in-flight future if provisioning is already running, or
        the completed one if the model is already ready. A failed attempt is
        retried only when start() is called again.
        """
        with self._lock:
            if self._future is not None and (not self._future.done() or self._handle.is_ready):
                return self._future
            self._handle.mark_provisioning()
            self._future = self._executor.submit(self._provision)
            return self._future

    def provision(self, timeout: float | None = None) -> ModelHandle:
        """Provision synchronously.

        Raises:
            ProvisioningError: If no source produced an engine.
        """
        return self.start().result(timeout=timeout)

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for in-flight provisioning; return whether the model is ready."""
        future = self._future
        if future is not None:
            wait_futures([future], timeout=timeout)
        return self._handle.is_ready

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Model provisioner stopped")

    # -- Internal -----------------------------------------------------------

    def _provision(self) -> ModelHandle:
        try:
            return self._provision_from_sources()
        except ProvisioningError:
            raise
        except Exception as exc:
            self._handle.set_failed(str(exc))
            logger.exception("Provisioning of %s failed", self._spec.name)
            raise ProvisioningError(f"Model {self._spec.name} unavailable: {exc}") from exc

    def _provision_from_sources(self) -> ModelHandle:
        logger.info("Provisioning model %s", self._spec.name)
        failures: list[str] = []

        for source, locate in (
            (ModelSource.CACHE, self._locate_cached),
            (ModelSource.REMOTE, self._download),
            (ModelSource.BUNDLED, self._locate_bundled),
        ):
            try:
                path = locate()
            except _DOWNLOAD_ERRORS as exc:
                logger.warning("Model source %s unavailable: %s", source, exc)
                failures.append(f"{source}: {exc}")
                continue
            if path is None:
                continue

            try:
                engine = self._engine_factory(path, self._settings)
            except InferenceError as exc:
                logger.warning("Model from %s could not be loaded: %s", source, exc)
                failures.append(f"{source}: {exc}")
                continue

            self._handle.set_ready(engine, source, path)
            logger.info("Model %s ready (source=%s, path=%s)", self._spec.name, source, path)
            if source is ModelSource.CACHE and self._settings.update_in_background:
                self._executor.submit(self._refresh)
            return self._handle

        detail = "; ".join(failures) or "no model source configured"
        self._handle.set_failed(detail)
        logger.error("Provisioning of %s failed: %s", self._spec.name, detail)
        raise ProvisioningError(f"Model {self._spec.name} unavailable: {detail}")

    def _download_allowed(self) -> bool:
        if self._conditions.allows(metered=self._settings.network_metered):
            return True
        logger.info("Download conditions not met for %s (metered network)", self._spec.name)
        return False

    def _hub_download(self, repo_id: str, *, local_files_only: bool) -> Path:
        return Path(
            hf_hub_download(
                repo_id=repo_id,
                filename=self._spec.filename,
                revision=self._spec.revision,
                local_dir=str(self._models_dir),
                local_files_only=local_files_only,
            )
        )

    def _locate_cached(self) -> Path | None:
        repo_id = self._spec.repo_id
        if repo_id is None:
            return None
        try:
            return self._hub_download(repo_id, local_files_only=True)
        except LocalEntryNotFoundError:
            logger.info("No cached copy of %s", self._spec.name)
            return None

    def _download(self) -> Path | None:
        repo_id = self._spec.repo_id
        if repo_id is None or not self._download_allowed():
            return None
        downloaded = self._hub_download(repo_id, local_files_only=False)
        logger.info("Downloaded %s to %s", self._spec.name, downloaded)
        return downloaded

    def _locate_bundled(self) -> Path | None:
        bundled = self._spec.bundled_path
        if bundled is None:
            return None
        if not bundled.is_file():
            raise FileNotFoundError(f"Bundled model not found: {bundled}")
        return bundled

    def _refresh(self) -> None:
        """Fetch the latest remote artifact for the next provisioning."""
        repo_id = self._spec.repo_id
        if repo_id is None or not self._download_allowed():
            return
        try:
            path = self._hub_download(repo_id, local_files_only=False)
        except _DOWNLOAD_ERRORS as exc:
            logger.warning("Background update of %s failed: %s", self._spec.name, exc)
            return
        logger.info("Background update of %s stored at %s", self._spec.name, path)
