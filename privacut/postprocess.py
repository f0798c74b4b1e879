from __future__ import annotations

import numpy as np

from .config import INPUT_SIZE
from .errors import InferenceFailed, InvalidInput


def saliency_plane(output: np.ndarray, size: int = INPUT_SIZE) -> np.ndarray:
    """
    View the raw model output as a single (size, size) plane.

    Only "one value per input location, addressable as y*S + x" is assumed:
    (1,1,S,S), (1,S,S) and (S,S) all reduce to the first S*S values.
    """
    flat = np.asarray(output, dtype=np.float32).reshape(-1)
    n = size * size
    if flat.size < n:
        raise InferenceFailed(f"Model output has {flat.size} values, expected at least {n}")
    return flat[:n].reshape(size, size)


def nearest_indices(target: int, size: int = INPUT_SIZE) -> np.ndarray:
    """
    Source index in [0, size) for each of `target` destination indices: floor(i * size / target).

    Integer arithmetic keeps exact products (e.g. 49 * 1024 / 98 == 512) from rounding down.
    """
    idx = np.arange(target, dtype=np.int64) * int(size) // int(target)
    return np.minimum(idx, size - 1)


def minmax_to_uint8(values: np.ndarray, lo: float, hi: float) -> np.ndarray:
    """
    Rescale to [0, 255] by global min/max and truncate. A flat input (hi == lo) maps to zeros.
    """
    if hi == lo:
        return np.zeros(values.shape, dtype=np.uint8)
    scaled = (values.astype(np.float64) - lo) / (hi - lo) * 255.0
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


def postprocess(output: np.ndarray, width: int, height: int, size: int = INPUT_SIZE) -> np.ndarray:
    """
    Raw saliency output -> flat uint8 mask of length width*height (row-major, original resolution).

    Steps:
      1) global min/max over the S*S plane
      2) nearest-neighbor lookup with independent per-axis ratios
      3) min-max rescale to [0, 255]
    """
    if width <= 0 or height <= 0:
        raise InvalidInput(f"Invalid target size: {(height, width)}")

    plane = saliency_plane(output, size)
    lo = float(plane.min())
    hi = float(plane.max())

    ys = nearest_indices(height, size)
    xs = nearest_indices(width, size)
    sampled = plane[ys[:, None], xs[None, :]]  # (height, width)

    return minmax_to_uint8(sampled, lo, hi).reshape(-1)
