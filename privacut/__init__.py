"""On-device background removal: preprocess -> segmentation model -> alpha mask -> RGBA."""

from .composite import composite, save_rgba_png
from .config import INPUT_SIZE, Settings
from .errors import (
    Cancelled,
    DimensionMismatch,
    InferenceFailed,
    InvalidInput,
    ModelLoadFailed,
    ModelMissing,
    PrivacutError,
    SessionNotReady,
)
from .image import ImageBuffer
from .pipeline import RemovalResult, StageTimings, remove_background
from .postprocess import postprocess
from .preprocess import preprocess
from .session import OnnxSession, SegmentationSession, TorchScriptSession, create_session, open_session
from .worker import BackgroundRemover

__version__ = "0.1.0"

__all__ = [
    "BackgroundRemover",
    "Cancelled",
    "DimensionMismatch",
    "INPUT_SIZE",
    "ImageBuffer",
    "InferenceFailed",
    "InvalidInput",
    "ModelLoadFailed",
    "ModelMissing",
    "OnnxSession",
    "PrivacutError",
    "RemovalResult",
    "SegmentationSession",
    "SessionNotReady",
    "Settings",
    "StageTimings",
    "TorchScriptSession",
    "composite",
    "create_session",
    "open_session",
    "postprocess",
    "preprocess",
    "remove_background",
    "save_rgba_png",
]
