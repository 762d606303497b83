"""Image preprocessing: decoding and conversion to the raw model input buffer.

The classifier consumes a flat uint8 buffer of ``input_size * input_size * 3``
bytes: the image squashed to a square (aspect ratio is not preserved), pixels
row-major, channels in R, G, B order, no normalization.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

from dishid.errors import InvalidImage

if TYPE_CHECKING:
    from numpy.typing import NDArray

RESAMPLE_FILTER = Image.Resampling.BILINEAR


def _validate(image: Image.Image, max_pixels: int | None) -> Image.Image:
    width, height = image.size
    if width == 0 or height == 0:
        raise InvalidImage(f"Image has zero size ({width}x{height})")
    if max_pixels is not None and width * height > max_pixels:
        raise InvalidImage(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
    return image.convert("RGB")


def decode_image(data: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into an RGB Pillow image.

    Args:
        data: Raw file bytes (any format Pillow can read).
        max_pixels: Optional upper bound on width * height.

    Raises:
        InvalidImage: If the bytes cannot be decoded, the image is empty,
            or it exceeds ``max_pixels``.
    """
    if not data:
        raise InvalidImage("Empty image data")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return _validate(image, max_pixels)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise InvalidImage(f"Cannot decode image: {exc}") from exc


def load_image(path: str | Path, max_pixels: int | None = None) -> Image.Image:
    """Load an image file (camera capture or bundled asset) as RGB."""
    try:
        data = Path(path).read_bytes()
    except FileNotFoundError:
        raise InvalidImage(f"Image file not found: {path}") from None
    return decode_image(data, max_pixels=max_pixels)


def _as_pil(image: Image.Image | NDArray[np.uint8]) -> Image.Image:
    if isinstance(image, Image.Image):
        if image.width == 0 or image.height == 0:
            raise InvalidImage(f"Image has zero size ({image.width}x{image.height})")
        return image if image.mode == "RGB" else image.convert("RGB")

    array = np.asarray(image)
    if array.ndim not in (2, 3) or array.shape[0] == 0 or array.shape[1] == 0:
        raise InvalidImage(f"Unsupported image array shape {array.shape}")
    if array.ndim == 3 and array.shape[2] not in (3, 4):
        raise InvalidImage(f"Unsupported channel count {array.shape[2]}")
    if array.dtype != np.uint8:
        raise InvalidImage(f"Expected uint8 pixels, got {array.dtype}")
    return Image.fromarray(array).convert("RGB")


def to_input_buffer(image: Image.Image | NDArray[np.uint8], input_size: int) -> NDArray[np.uint8]:
    """Resize an image to ``input_size`` squared and flatten it to RGB bytes.

    Args:
        image: Pillow image, HxWx3/HxWx4 uint8 array, or HxW grayscale array.
        input_size: Target width and height in pixels.

    Returns:
        Contiguous uint8 array of length ``3 * input_size**2``.

    Raises:
        InvalidImage: If the image has zero width or height.
    """
    if input_size < 1:
        raise ValueError(f"input_size must be positive, got {input_size}")
    resized = _as_pil(image).resize((input_size, input_size), resample=RESAMPLE_FILTER)
    # np.asarray on an RGB image is HxWx3, already row-major R, G, B.
    return np.ascontiguousarray(np.asarray(resized, dtype=np.uint8)).reshape(-1)
