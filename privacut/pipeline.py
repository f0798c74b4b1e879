from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .composite import composite
from .errors import Cancelled, InferenceFailed, PrivacutError, SessionNotReady
from .image import ImageBuffer
from .postprocess import postprocess
from .preprocess import ImageLike, as_image, preprocess
from .session import SegmentationSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTimings:
    preprocess_s: float = 0.0
    inference_s: float = 0.0
    postprocess_s: float = 0.0
    composite_s: float = 0.0
    total_s: float = 0.0


@dataclass(frozen=True)
class RemovalResult:
    """
    image: RGBA output, or the caller's original image when inference failed.
    error: the recovered failure (SessionNotReady / InferenceFailed), else None.
    """

    image: ImageBuffer
    error: Optional[PrivacutError] = None
    timings: StageTimings = StageTimings()

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled(f"Cancelled before {stage}")


def remove_background(
    image: ImageLike,
    session: SegmentationSession,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> RemovalResult:
    """
    Linear pipeline:
      1) Preprocess (resize to S x S, normalize)
      2) Inference
      3) Post-process (min-max, nearest-neighbor back to original size)
      4) Composite (mask -> alpha)

    InvalidInput / DimensionMismatch / Cancelled propagate. SessionNotReady and
    InferenceFailed are recovered: the original image comes back with the error attached.
    """
    src = as_image(image)
    t0 = time.perf_counter()

    # Preprocess
    _check_cancelled(cancel_event, "preprocess")
    t_pre0 = time.perf_counter()
    x = preprocess(src, session.input_size)
    t_pre1 = time.perf_counter()

    # Inference
    _check_cancelled(cancel_event, "inference")
    t_inf0 = time.perf_counter()
    try:
        y = session.infer(x)
    except (SessionNotReady, InferenceFailed) as e:
        t1 = time.perf_counter()
        logger.warning("Background removal skipped, returning original image: %s", e)
        return RemovalResult(
            image=src,
            error=e,
            timings=StageTimings(preprocess_s=t_pre1 - t_pre0, inference_s=t1 - t_inf0, total_s=t1 - t0),
        )
    t_inf1 = time.perf_counter()

    # Post-process
    _check_cancelled(cancel_event, "postprocess")
    t_post0 = time.perf_counter()
    try:
        mask = postprocess(y, src.width, src.height, session.input_size)
    except InferenceFailed as e:
        t1 = time.perf_counter()
        logger.warning("Unusable model output, returning original image: %s", e)
        return RemovalResult(
            image=src,
            error=e,
            timings=StageTimings(
                preprocess_s=t_pre1 - t_pre0,
                inference_s=t_inf1 - t_inf0,
                postprocess_s=t1 - t_post0,
                total_s=t1 - t0,
            ),
        )
    t_post1 = time.perf_counter()

    # Composite
    _check_cancelled(cancel_event, "composite")
    t_comp0 = time.perf_counter()
    out = composite(src, mask)
    t_comp1 = time.perf_counter()

    return RemovalResult(
        image=out,
        timings=StageTimings(
            preprocess_s=t_pre1 - t_pre0,
            inference_s=t_inf1 - t_inf0,
            postprocess_s=t_post1 - t_post0,
            composite_s=t_comp1 - t_comp0,
            total_s=t_comp1 - t0,
        ),
    )
