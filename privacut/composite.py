from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np

from .errors import DimensionMismatch, InvalidInput
from .image import ImageBuffer


def composite(image: ImageBuffer, mask: np.ndarray) -> ImageBuffer:
    """
    Attach a flat uint8 mask (length W*H, row-major) as the alpha channel of `image`.

    RGB is copied unchanged; alpha == mask value (no threshold, no feathering).
    An existing alpha channel on the input is replaced. The input is never mutated.
    """
    mask = np.asarray(mask)
    expected = image.width * image.height
    if mask.size != expected:
        raise DimensionMismatch(
            f"Mask length {mask.size} does not match image {image.width}x{image.height} ({expected})"
        )
    if mask.dtype != np.uint8:
        if np.issubdtype(mask.dtype, np.floating) and not np.isfinite(mask).all():
            raise InvalidInput("Mask contains NaN or infinite values")
        mask = np.clip(mask, 0, 255).astype(np.uint8)

    a8 = mask.reshape(image.height, image.width)
    rgba = np.ascontiguousarray(np.dstack([image.rgb, a8]))
    rgba.setflags(write=False)
    return ImageBuffer(rgba)


def save_rgba_png(image: ImageBuffer, out_path: Union[str, Path]) -> None:
    """
    Save as lossless RGBA PNG.
    """
    img = image.to_pil()
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    img.save(str(p), format="PNG", optimize=False)
