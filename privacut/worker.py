from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .config import Settings
from .model_store import resolve_model_path
from .pipeline import RemovalResult, remove_background
from .preprocess import ImageLike
from .session import SegmentationSession, create_session

logger = logging.getLogger(__name__)


class BackgroundRemover:
    """
    Runs the pipeline off the caller's thread on a single worker.

    One worker means one inference at a time on the owned session. Results come back
    as futures; a failed inference resolves to a RemovalResult carrying the original image.
    """

    def __init__(self, session: SegmentationSession) -> None:
        self.session = session
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BackgroundRemover":
        if settings is None:
            settings = Settings.from_env()
        model_path = resolve_model_path(settings)
        session = create_session(
            model_path,
            settings.backend,
            input_size=settings.input_size,
            providers=settings.providers,
            device=settings.device,
        )
        return cls(session)

    def start(self) -> "BackgroundRemover":
        """
        Open the session. ModelMissing / ModelLoadFailed propagate; build a new remover to retry.
        """
        try:
            self.session.open()
        except Exception:
            self.session.close()
            raise
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="privacut")
        return self

    def submit(self, image: ImageLike, cancel_event: Optional[threading.Event] = None) -> "Future[RemovalResult]":
        if self._executor is None:
            raise RuntimeError("BackgroundRemover.start() must be called before submit().")
        return self._executor.submit(remove_background, image, self.session, cancel_event=cancel_event)

    def close(self) -> None:
        executor, self._executor = self._executor, None
        try:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)
        finally:
            self.session.close()

    def __enter__(self) -> "BackgroundRemover":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
