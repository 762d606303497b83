"""Tests for argmax prediction selection."""

from __future__ import annotations

import numpy as np
import pytest

from dishid.errors import EmptyOutput
from dishid.ml.selector import Prediction, select_max


class TestSelectMax:
    def test_leftmost_maximum_wins(self) -> None:
        assert select_max(bytes([5, 5, 3, 5])) == (0, 5)

    def test_accepts_numpy_and_lists(self) -> None:
        assert select_max(np.array([1, 9, 9], dtype=np.uint8)) == (1, 9)
        assert select_max([0, 3, 7, 2]) == (2, 7)

    def test_signed_comparison_treats_high_bytes_as_negative(self) -> None:
        # 200 reads as -56 when signed.
        assert select_max(bytes([200, 100])) == (1, 100)

    def test_unsigned_comparison(self) -> None:
        assert select_max(bytes([200, 100]), signed=False) == (0, 200)

    def test_all_negative_signed(self) -> None:
        assert select_max(bytes([254, 255, 128])) == (1, -1)

    def test_int8_array_input(self) -> None:
        assert select_max(np.array([-3, -1, -2], dtype=np.int8)) == (1, -1)

    def test_negative_ints_read_as_signed_bytes(self) -> None:
        assert select_max([-1, 5, -128]) == (1, 5)

    def test_out_of_range_ints_rejected(self) -> None:
        with pytest.raises(ValueError, match="one byte"):
            select_max(np.array([300, 2]))

    def test_float_scores_rejected(self) -> None:
        with pytest.raises(ValueError, match="integer"):
            select_max(np.array([0.5, 0.2]))

    def test_empty_output_raises(self) -> None:
        with pytest.raises(EmptyOutput):
            select_max(b"")

    def test_empty_array_raises(self) -> None:
        with pytest.raises(EmptyOutput):
            select_max(np.array([], dtype=np.uint8))


class TestPrediction:
    def test_messages(self) -> None:
        prediction = Prediction(class_index=42, score=117, label="Pad Thai")
        assert prediction.message == "Predicted food: Pad Thai"
        assert prediction.diagnostic == "Index of max value: 42, Max value: 117"
