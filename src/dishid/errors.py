"""Error taxonomy for the identification pipeline."""

from __future__ import annotations


class DishIDError(Exception):
    """Base class for all DishID errors."""


class InvalidImage(DishIDError, ValueError):  # noqa: N818
    """The input could not be decoded or has zero width/height."""


class ModelNotReady(DishIDError):  # noqa: N818
    """Inference was attempted before a model engine was provisioned."""


class InferenceError(DishIDError):
    """The inference engine rejected the input or produced unusable output."""


class EmptyOutput(DishIDError):  # noqa: N818
    """The output buffer contained no scores."""


class LabelIndexOutOfRange(DishIDError, IndexError):  # noqa: N818
    """The selected class index has no corresponding label."""

    def __init__(self, index: int, size: int) -> None:
        super().__init__(f"Class index {index} is outside the label table (size {size})")
        self.index = index
        self.size = size


class MalformedRow(DishIDError, ValueError):  # noqa: N818
    """A label resource line could not be parsed."""

    def __init__(self, line_number: int, line: str) -> None:
        super().__init__(f"Line {line_number} has fewer than two comma-separated fields: {line!r}")
        self.line_number = line_number
        self.line = line


class ProvisioningError(DishIDError):
    """No source could produce a model engine."""


class LabelTableMismatch(DishIDError, ValueError):  # noqa: N818
    """The label table length does not match the model's output size."""
