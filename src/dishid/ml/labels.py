"""Label table: class index to food name mapping read from a CSV resource."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

from dishid.errors import LabelIndexOutOfRange, LabelTableMismatch, MalformedRow

logger = logging.getLogger(__name__)


class LabelTable:
    """Read-only ordered labels; position i names the model's output class i."""

    def __init__(self, labels: Iterable[str]) -> None:
        self._labels: tuple[str, ...] = tuple(labels)

    def __getitem__(self, index: int) -> str:
        return self._labels[index]

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"LabelTable(size={len(self._labels)})"

    def label_for(self, index: int) -> str:
        """Return the label for a class index, without negative-index wraparound."""
        if not 0 <= index < len(self._labels):
            raise LabelIndexOutOfRange(index, len(self._labels))
        return self._labels[index]

    def check_size(self, output_size: int, *, strict: bool = False) -> None:
        """Compare the table length against the model's output size."""
        if len(self._labels) == output_size:
            return
        message = f"Label table has {len(self._labels)} entries but the model emits {output_size} classes"
        if strict:
            raise LabelTableMismatch(message)
        logger.warning(message)


def parse_labels(text: str) -> LabelTable:
    """Parse label CSV text.

    The first line is a header and is dropped. For each remaining line the
    second comma-separated field is the label, in file order.

    Raises:
        MalformedRow: If a line has fewer than two fields.
    """
    labels: list[str] = []
    for line_number, line in enumerate(text.splitlines()[1:], start=2):
        fields = line.split(",")
        if len(fields) < 2:
            raise MalformedRow(line_number, line)
        labels.append(fields[1])
    return LabelTable(labels)


def load_labels(path: str | Path) -> LabelTable:
    """Load a label table from a CSV file."""
    table = parse_labels(Path(path).read_text(encoding="utf-8"))
    logger.info("Loaded %d labels from %s", len(table), path)
    return table
