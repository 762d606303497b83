"""End-to-end identification: preprocess, invoke, select, label."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dishid.ml.classifier import ClassifierInvoker
from dishid.ml.preprocessing import decode_image, load_image, to_input_buffer
from dishid.ml.selector import Prediction, select_max

if TYPE_CHECKING:
    from pathlib import Path

    import numpy as np
    from numpy.typing import NDArray
    from PIL import Image

    from dishid.config import Settings
    from dishid.ml.labels import LabelTable
    from dishid.ml.model_manager import ModelHandle

logger = logging.getLogger(__name__)


class DishIdentifier:
    """Runs one image through the classifier and names the predicted dish."""

    def __init__(self, handle: ModelHandle, labels: LabelTable, settings: Settings) -> None:
        self._invoker = ClassifierInvoker(handle, settings.output_size)
        self._labels = labels
        self._input_size = settings.input_size
        self._signed = settings.signed_scores
        self._max_pixels = settings.max_image_pixels

    @property
    def labels(self) -> LabelTable:
        return self._labels

    def identify(self, image: Image.Image | NDArray[np.uint8]) -> Prediction:
        """Identify the dish in a decoded image.

        Raises:
            InvalidImage: If the image is empty.
            ModelNotReady: If the model has not been provisioned.
            InferenceError: If the engine fails.
            EmptyOutput: If the engine produced no scores.
            LabelIndexOutOfRange: If the winning class has no label.
        """
        input_buffer = to_input_buffer(image, self._input_size)
        output = self._invoker.invoke(input_buffer)
        index, score = select_max(output, signed=self._signed)
        logger.debug("Index of max value: %d, Max value: %d", index, score)
        return Prediction(class_index=index, score=score, label=self._labels.label_for(index))

    def identify_bytes(self, data: bytes) -> Prediction:
        return self.identify(decode_image(data, max_pixels=self._max_pixels))

    def identify_path(self, path: str | Path) -> Prediction:
        return self.identify(load_image(path, max_pixels=self._max_pixels))
