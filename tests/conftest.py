from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import numpy as np
import pytest

from privacut.session import SegmentationSession


class FakeSession(SegmentationSession):
    """
    In-process stand-in for a runtime: saliency = red channel of the input tensor.
    """

    def __init__(self, model_path, input_size: int = 8, run: Optional[Callable] = None, load_error=None):
        super().__init__(model_path, input_size)
        self._run_fn = run
        self._load_error = load_error
        self.loaded = 0
        self.released = 0
        self.calls = 0

    def _load(self) -> None:
        self.loaded += 1
        if self._load_error is not None:
            raise self._load_error
        self._resolve_names(["pixel_values"], ["alphas"])

    def _run(self, tensor: np.ndarray):
        self.calls += 1
        if self._run_fn is not None:
            return self._run_fn(tensor)
        return tensor[:, 0:1, :, :].copy()

    def _release(self) -> None:
        self.released += 1


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    p = tmp_path / "models" / "fake_model.onnx"
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(b"fake-model-bytes")
    return p


@pytest.fixture
def make_session(model_file: Path):
    def _make(**kwargs) -> FakeSession:
        return FakeSession(kwargs.pop("model_path", model_file), **kwargs)

    return _make
