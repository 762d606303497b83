"""Classifier invocation: an opaque ONNX engine behind a readiness gate."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import numpy as np
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import (
    EngineError,
    EPFail,
    ExecutionMode,
    Fail,
    InvalidArgument,
    InvalidGraph,
    InvalidProtobuf,
    ModelLoaded,
    NoModel,
    NoSuchFile,
    RuntimeException,
)
from onnxruntime.capi.onnxruntime_pybind11_state import NotImplemented as OrtNotImplemented

from dishid.errors import InferenceError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from dishid.config import Settings
    from dishid.ml.model_manager import ModelHandle

logger = logging.getLogger(__name__)

# pybind11 error types derive from Exception, not RuntimeError.
_ORT_ERRORS = (
    EngineError,
    EPFail,
    Fail,
    InvalidArgument,
    InvalidGraph,
    InvalidProtobuf,
    ModelLoaded,
    NoModel,
    NoSuchFile,
    OrtNotImplemented,
    RuntimeException,
    RuntimeError,
)


class ClassifierEngine(Protocol):
    """Protocol for a loaded inference engine."""

    def run(self, input_buffer: NDArray[np.uint8]) -> NDArray[np.generic]:
        """Run one inference on a flat RGB input buffer.

        Raises:
            InferenceError: If the engine rejects the input.
        """
        ...


def build_providers(settings: Settings) -> list[str | tuple[str, dict[str, object]]]:
    """Execution providers for the configured device, CPU last as fallback."""
    device = settings.device
    if device == "cuda":
        return [
            (
                "CUDAExecutionProvider",
                {
                    "device_id": 0,
                    "gpu_mem_limit": settings.gpu_mem_limit,
                    "arena_extend_strategy": "kSameAsRequested",
                },
            ),
            "CPUExecutionProvider",
        ]
    if device == "openvino":
        return [
            ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
            "CPUExecutionProvider",
        ]
    return ["CPUExecutionProvider"]


def build_session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True

    if settings.device == "openvino":
        # OpenVINO does its own graph optimization
        from onnxruntime import GraphOptimizationLevel

        opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
    return opts


class OnnxEngine:
    """ONNX Runtime session fed with a single NHWC uint8 image."""

    def __init__(self, model_path: str | Path, settings: Settings) -> None:
        self._input_shape = (1, settings.input_size, settings.input_size, 3)
        try:
            self._session = InferenceSession(
                str(model_path),
                sess_options=build_session_options(settings),
                providers=build_providers(settings),
            )
        except _ORT_ERRORS as exc:
            raise InferenceError(f"Cannot load model {model_path}: {exc}") from exc
        self._input_name = self._session.get_inputs()[0].name
        self._output_name = self._session.get_outputs()[0].name
        logger.info("Loaded session for %s", model_path)

    def run(self, input_buffer: NDArray[np.uint8]) -> NDArray[np.generic]:
        try:
            tensor = np.asarray(input_buffer, dtype=np.uint8).reshape(self._input_shape)
        except ValueError as exc:
            raise InferenceError(f"Input buffer does not fit shape {self._input_shape}") from exc
        try:
            outputs = self._session.run([self._output_name], {self._input_name: tensor})
        except _ORT_ERRORS as exc:
            raise InferenceError(f"Engine rejected input: {exc}") from exc
        return np.asarray(outputs[0]).reshape(-1)


class ClassifierInvoker:
    """Runs the provisioned engine and extracts the fixed-size output buffer."""

    def __init__(self, handle: ModelHandle, output_size: int) -> None:
        self._handle = handle
        self._output_size = output_size

    @property
    def output_size(self) -> int:
        return self._output_size

    def invoke(self, input_buffer: NDArray[np.uint8]) -> bytes:
        """Return the first ``output_size`` raw score bytes.

        Raises:
            ModelNotReady: If no engine has been provisioned yet.
            InferenceError: If the engine fails or returns too few scores.
        """
        engine = self._handle.engine
        try:
            output = np.asarray(engine.run(input_buffer)).reshape(-1)
        except ValueError as exc:
            raise InferenceError(f"Engine rejected input: {exc}") from exc

        if output.dtype not in (np.uint8, np.int8):
            raise InferenceError(f"Expected 8-bit quantized output, got {output.dtype}")
        if output.size == 0:
            return b""
        if output.size < self._output_size:
            raise InferenceError(f"Engine returned {output.size} scores, expected {self._output_size}")
        return output[: self._output_size].view(np.uint8).tobytes()
