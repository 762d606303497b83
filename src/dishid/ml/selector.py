"""Prediction selection: argmax over the quantized output scores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from dishid.errors import EmptyOutput

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True)
class Prediction:
    """The winning class for one inference call."""

    class_index: int
    score: int
    label: str

    @property
    def message(self) -> str:
        return f"Predicted food: {self.label}"

    @property
    def diagnostic(self) -> str:
        return f"Index of max value: {self.class_index}, Max value: {self.score}"


def select_max(output: bytes | bytearray | NDArray[np.uint8], *, signed: bool = True) -> tuple[int, int]:
    """Return ``(index, value)`` of the highest score.

    Each byte is read as int8 when ``signed`` is set (values above 127 rank
    below zero), otherwise as uint8. Ties resolve to the lowest index.

    Raises:
        EmptyOutput: If the buffer has no elements.
        ValueError: If an array holds values that do not fit in a byte.
    """
    if isinstance(output, bytes | bytearray):
        raw = np.frombuffer(bytes(output), dtype=np.uint8)
    else:
        raw = np.asarray(output)
    if raw.size == 0:
        raise EmptyOutput("Output buffer is empty")
    if raw.dtype not in (np.uint8, np.int8):
        if not np.issubdtype(raw.dtype, np.integer):
            raise ValueError(f"Expected integer scores, got {raw.dtype}")
        if raw.min() < -128 or raw.max() > 255:
            raise ValueError("Scores must fit in one byte (-128..255)")
        raw = raw.astype(np.uint8)
    scores = raw.reshape(-1).view(np.int8 if signed else np.uint8)
    # np.argmax returns the first occurrence of the maximum.
    index = int(np.argmax(scores))
    return index, int(scores[index])
