from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, Union

import cv2
import numpy as np
from PIL import Image

from .image import ImageBuffer

IMAGE_EXTS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"})


def load_image(path: Union[str, Path]) -> ImageBuffer:
    """
    Decode an image file into an RGB ImageBuffer. Alpha, if present, is dropped.

    Missing, empty and undecodable files all raise FileNotFoundError.
    """
    p = Path(path)
    try:
        data = np.fromfile(str(p), dtype=np.uint8)
    except OSError as e:
        raise FileNotFoundError(f"Could not read image: {p}") from e

    # imdecode instead of imread: works with non-ASCII paths on every platform
    bgr = cv2.imdecode(data, cv2.IMREAD_COLOR) if data.size else None
    if bgr is None:
        raise FileNotFoundError(f"Could not decode image: {p}")
    return ImageBuffer.from_array(bgr[..., ::-1])


def rotate_image(image: ImageBuffer, degrees: float) -> ImageBuffer:
    """
    Rotate clockwise by `degrees`, expanding the canvas to fit.

    Multiples of 90 are exact (pure index permutation); other angles use bicubic resampling.
    """
    turns, rest = divmod(float(degrees), 90.0)
    if rest == 0.0:
        # np.rot90 with k>0 is counter-clockwise
        return ImageBuffer.from_array(np.rot90(image.pixels, k=-int(turns) % 4))
    rotated = image.to_pil().rotate(-float(degrees), resample=Image.Resampling.BICUBIC, expand=True)
    return ImageBuffer.from_pil(rotated)


def iter_images(root: Union[str, Path], exts: Iterable[str] = IMAGE_EXTS) -> Iterator[Path]:
    """Image files under `root` in sorted order; hidden files and directories are skipped."""
    wanted = {e.lower() for e in exts}
    root = Path(root)
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        if p.suffix.lower() in wanted and p.is_file():
            yield p
