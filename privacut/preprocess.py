from __future__ import annotations

from typing import Union

import cv2
import numpy as np

from .config import INPUT_SIZE, NORM_MEAN, NORM_STD
from .errors import InvalidInput
from .image import ImageBuffer

ImageLike = Union[ImageBuffer, np.ndarray]


def as_image(image: ImageLike) -> ImageBuffer:
    if isinstance(image, ImageBuffer):
        return image
    return ImageBuffer.from_array(image)


def resize_square(rgb: np.ndarray, size: int = INPUT_SIZE) -> np.ndarray:
    """
    Stretch an RGB uint8 image to exactly (size, size, 3). Aspect ratio is not preserved.
    """
    if size <= 0:
        raise InvalidInput(f"Invalid model input size: {size}")
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise InvalidInput(f"Expected RGB image (H,W,3), got shape={rgb.shape}")
    h, w = rgb.shape[:2]
    if (h, w) == (size, size):
        return np.ascontiguousarray(rgb)
    return cv2.resize(np.ascontiguousarray(rgb), (size, size), interpolation=cv2.INTER_LINEAR)


def normalize(img: np.ndarray) -> np.ndarray:
    """
    Normalize a square uint8 RGB image to a float32 NCHW tensor: (1, 3, S, S).

    Plane c holds channel c (R, G, B); element y*S + x of a plane is row y, column x.
    """
    if img.ndim != 3 or img.shape[2] != 3 or img.shape[0] != img.shape[1]:
        raise InvalidInput(f"Expected square RGB image (S,S,3), got {img.shape}")
    x = img.astype(np.float32) / 255.0
    mean = np.array(NORM_MEAN, dtype=np.float32).reshape(1, 1, 3)
    std = np.array(NORM_STD, dtype=np.float32).reshape(1, 1, 3)
    x = (x - mean) / std
    x = np.transpose(x, (2, 0, 1))  # CHW
    return np.ascontiguousarray(x[np.newaxis, ...], dtype=np.float32)  # NCHW


def preprocess(image: ImageLike, size: int = INPUT_SIZE) -> np.ndarray:
    """
    Image -> model input tensor of shape (1, 3, size, size), values in [-0.5, 0.5].

    Any alpha channel on the input is ignored.
    """
    buf = as_image(image)
    return normalize(resize_square(buf.rgb, size))
