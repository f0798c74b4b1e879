from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image

from .errors import InvalidInput


@dataclass(frozen=True, eq=False)
class ImageBuffer:
    """
    Immutable RGB / RGBA pixel grid.

    pixels: uint8 ndarray of shape (H, W, 3) or (H, W, 4), read-only.
    Use `ImageBuffer.from_array` to build one; it copies and validates.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        p = self.pixels
        if p is None:
            raise InvalidInput("Image has no pixel data.")
        if not isinstance(p, np.ndarray):
            raise InvalidInput(f"Expected numpy pixel buffer, got {type(p).__name__}")
        if p.ndim != 3 or p.shape[2] not in (3, 4):
            raise InvalidInput(f"Expected image (H,W,3) or (H,W,4), got shape={p.shape}")
        h, w, c = p.shape
        if h <= 0 or w <= 0:
            raise InvalidInput(f"Invalid image size: {(h, w)}")
        if p.dtype != np.uint8:
            raise InvalidInput(f"Expected uint8 pixels, got {p.dtype}")
        if p.size != h * w * c:
            raise InvalidInput(f"Pixel buffer length {p.size} != {h}*{w}*{c}")

    @classmethod
    def from_array(cls, pixels) -> "ImageBuffer":
        if pixels is None:
            raise InvalidInput("Image has no pixel data.")
        arr = np.asarray(pixels)
        if arr.dtype != np.uint8:
            if not np.issubdtype(arr.dtype, np.integer) or arr.size == 0 or arr.min() < 0 or arr.max() > 255:
                raise InvalidInput(f"Pixel values must be 8-bit unsigned, got dtype={arr.dtype}")
            arr = arr.astype(np.uint8)
        # own the buffer: later writes by the caller must not leak in
        arr = np.array(arr, dtype=np.uint8, copy=True, order="C")
        arr.setflags(write=False)
        return cls(arr)

    @classmethod
    def from_pil(cls, img: Image.Image) -> "ImageBuffer":
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        return cls.from_array(np.asarray(img))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[..., :3]

    @property
    def alpha(self) -> np.ndarray | None:
        return self.pixels[..., 3] if self.has_alpha else None

    def to_pil(self) -> Image.Image:
        # mode is inferred from the (H,W,3|4) uint8 layout
        return Image.fromarray(np.ascontiguousarray(self.pixels))
