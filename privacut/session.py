from __future__ import annotations

import enum
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import DEFAULT_INPUT_NAME, DEFAULT_OUTPUT_NAME, INPUT_SIZE
from .errors import InferenceFailed, ModelLoadFailed, ModelMissing, SessionNotReady

logger = logging.getLogger(__name__)

TORCH_SUFFIXES = {".pt", ".pth", ".torchscript", ".jit"}


class SessionState(enum.Enum):
    NEW = "new"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class SegmentationSession(ABC):
    """
    Exclusively owned handle to a loaded segmentation model.

    Lifecycle: open() once -> infer() many times -> close() once.
    infer() calls are serialized by an internal lock; most runtimes are not
    proven safe for concurrent runs on a single session.
    """

    def __init__(self, model_path: Union[str, Path], input_size: int = INPUT_SIZE) -> None:
        self.model_path = Path(model_path)
        self._input_size = int(input_size)
        self._lock = threading.Lock()
        self._state = SessionState.NEW
        self.input_name: Optional[str] = None
        self.output_name: Optional[str] = None
        self.input_shape: Tuple[int, ...] = (1, 3, self._input_size, self._input_size)

    # --------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def input_size(self) -> int:
        return int(self.input_shape[-1])

    # --------------------------------------------------
    def open(self) -> "SegmentationSession":
        with self._lock:
            if self._state is SessionState.READY:
                return self
            if self._state is not SessionState.NEW:
                raise SessionNotReady(
                    f"Session is {self._state.value}; create a new session to retry loading {self.model_path}"
                )
            if not self.model_path.is_file():
                self._state = SessionState.FAILED
                raise ModelMissing(f"Model not found: {self.model_path}")

            try:
                self._load()
            except ModelLoadFailed:
                self._release_quietly()
                self._state = SessionState.FAILED
                raise
            except Exception as e:  # noqa: BLE001 - any runtime rejection is a load failure
                self._release_quietly()
                self._state = SessionState.FAILED
                raise ModelLoadFailed(f"Failed to load model {self.model_path}: {e}") from e

            self._state = SessionState.READY
            logger.info(
                "Model %s ready (input=%s %s, output=%s)",
                self.model_path.name,
                self.input_name,
                self.input_shape,
                self.output_name,
            )
            return self

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run one forward pass. Returns a float32 array whose shape is model-defined.
        """
        with self._lock:
            if self._state is not SessionState.READY:
                raise SessionNotReady(f"Session is {self._state.value}, not ready for inference")

            if not isinstance(tensor, np.ndarray) or tensor.dtype != np.float32:
                raise InferenceFailed(f"Expected float32 ndarray input, got {getattr(tensor, 'dtype', type(tensor))}")
            if tuple(tensor.shape) != tuple(self.input_shape):
                raise InferenceFailed(f"Input shape {tuple(tensor.shape)} != declared {tuple(self.input_shape)}")

            try:
                y = self._run(np.ascontiguousarray(tensor))
            except InferenceFailed:
                raise
            except Exception as e:  # noqa: BLE001 - surface runtime faults as one error kind
                raise InferenceFailed(f"Inference failed: {e}") from e

        out = np.asarray(y, dtype=np.float32)
        n = self.input_size * self.input_size
        if out.size < n:
            raise InferenceFailed(f"Model output shape {out.shape} holds fewer than {n} values")
        if not np.isfinite(out).all():
            raise InferenceFailed("Non-finite values detected in model output.")
        return out

    def close(self) -> None:
        with self._lock:
            if self._state is SessionState.CLOSED:
                return
            try:
                self._release()
            finally:
                self._state = SessionState.CLOSED
                logger.debug("Session for %s closed", self.model_path.name)

    def __enter__(self) -> "SegmentationSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------------------------------------------
    def _release_quietly(self) -> None:
        try:
            self._release()
        except Exception:  # noqa: BLE001 - the load error is the one worth reporting
            logger.debug("Ignoring error while releasing a partially loaded session", exc_info=True)

    def _resolve_names(self, inputs: Sequence[str], outputs: Sequence[str]) -> None:
        """
        Use the first declared input and the first declared output.

        Models with several inputs or outputs are not verified; only the first of each is used.
        """
        logger.debug("Model inputs: %s", list(inputs))
        logger.debug("Model outputs: %s", list(outputs))
        if len(inputs) > 1 or len(outputs) > 1:
            logger.warning(
                "Model declares %d inputs / %d outputs; using the first of each",
                len(inputs),
                len(outputs),
            )
        self.input_name = inputs[0] if inputs else DEFAULT_INPUT_NAME
        self.output_name = outputs[0] if outputs else DEFAULT_OUTPUT_NAME

    @abstractmethod
    def _load(self) -> None:
        """Create the runtime handle and resolve names / input shape."""

    @abstractmethod
    def _run(self, tensor: np.ndarray) -> Any:
        """Forward pass on a validated (1, 3, S, S) float32 tensor."""

    @abstractmethod
    def _release(self) -> None:
        """Drop the runtime handle. Must tolerate a partially initialized state."""


def default_providers() -> List[str]:
    """
    Provider priority: CUDA, then DirectML, then CPU.
    """
    import onnxruntime as ort

    available = ort.get_available_providers()
    providers = [p for p in ("CUDAExecutionProvider", "DmlExecutionProvider") if p in available]
    providers.append("CPUExecutionProvider")
    return providers


class OnnxSession(SegmentationSession):
    """ONNX Runtime adapter (full graph optimization)."""

    def __init__(
        self,
        model_path: Union[str, Path],
        input_size: int = INPUT_SIZE,
        providers: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(model_path, input_size)
        self.providers = list(providers) if providers else None
        self._session = None

    def _load(self) -> None:
        import onnxruntime as ort

        opts = ort.SessionOptions()
        opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        providers = self.providers or default_providers()

        self._session = ort.InferenceSession(str(self.model_path), sess_options=opts, providers=providers)

        inputs = self._session.get_inputs()
        outputs = self._session.get_outputs()
        if not inputs or not outputs:
            raise ModelLoadFailed(f"Model {self.model_path} declares no inputs or no outputs")
        self._resolve_names([i.name for i in inputs], [o.name for o in outputs])

        # Symbolic dims (e.g. "batch") fall back to the configured (1, 3, S, S).
        declared = list(inputs[0].shape or [])
        if len(declared) == 4:
            fallback = (1, 3, self._input_size, self._input_size)
            shape = tuple(d if isinstance(d, int) and d > 0 else f for d, f in zip(declared, fallback))
            if shape[2] != shape[3]:
                raise ModelLoadFailed(f"Model input must be square, declared {declared}")
            self.input_shape = shape

    def _run(self, tensor: np.ndarray) -> Any:
        outputs = self._session.run([self.output_name], {self.input_name: tensor})
        if not outputs:
            raise InferenceFailed("Null output from model")
        return outputs[0]

    def _release(self) -> None:
        # onnxruntime frees native resources when the last reference goes away
        self._session = None


def get_device(preference: str = "auto"):
    """
    Pick a torch device: explicit preference, else cuda -> mps -> cpu.
    """
    import torch

    if preference != "auto":
        if preference == "cuda" and not torch.cuda.is_available():
            raise ModelLoadFailed("CUDA requested but torch.cuda.is_available() is False.")
        if preference == "mps" and not torch.backends.mps.is_available():
            raise ModelLoadFailed("MPS requested but torch.backends.mps.is_available() is False.")
        return torch.device(preference)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def _extract_primary_output(y):
    """
    TorchScript segmentation models may return:
      - a single tensor
      - (tensor, ...) tuple/list (the first tensor is the final saliency map)
      - dict with tensor fields
    """
    import torch

    if isinstance(y, torch.Tensor):
        return y
    if isinstance(y, (list, tuple)):
        for item in y:
            found = _extract_primary_output(item)
            if isinstance(found, torch.Tensor):
                return found
        return None
    if isinstance(y, dict):
        # Prefer common keys if present.
        for k in ("logits", "pred", "alpha", "mask", DEFAULT_OUTPUT_NAME):
            v = y.get(k, None)
            if isinstance(v, torch.Tensor):
                return v
        for v in y.values():
            if isinstance(v, torch.Tensor):
                return v
    return None


class TorchScriptSession(SegmentationSession):
    """
    PyTorch adapter for models saved with torch.jit.save.

    TorchScript modules carry no tensor names, so DEFAULT_INPUT_NAME / DEFAULT_OUTPUT_NAME are reported.
    """

    def __init__(self, model_path: Union[str, Path], input_size: int = INPUT_SIZE, device: str = "auto") -> None:
        super().__init__(model_path, input_size)
        self.device_preference = device
        self.device = None
        self._model = None

    def _load(self) -> None:
        import torch

        self.device = get_device(self.device_preference)
        # Load on CPU first, then cast to float32 and move.
        model = torch.jit.load(str(self.model_path), map_location="cpu")
        model.eval()
        for p in model.parameters():
            p.requires_grad_(False)
        self._model = model.to(dtype=torch.float32).to(self.device)
        self._resolve_names([DEFAULT_INPUT_NAME], [DEFAULT_OUTPUT_NAME])

    def _run(self, tensor: np.ndarray) -> Any:
        import torch

        x = torch.from_numpy(tensor).to(self.device)
        with torch.no_grad():
            y = self._model(x)
        y = _extract_primary_output(y)
        if y is None:
            raise InferenceFailed("Model output contains no tensor.")
        return y.detach().to("cpu").float().numpy()

    def _release(self) -> None:
        device = self.device
        self._model = None
        if device is not None and device.type == "cuda":
            import torch

            torch.cuda.empty_cache()


def create_session(
    model_path: Union[str, Path],
    backend: str = "auto",
    *,
    input_size: int = INPUT_SIZE,
    providers: Optional[Sequence[str]] = None,
    device: str = "auto",
) -> SegmentationSession:
    """
    Build (but do not open) the adapter for `model_path`.

    backend "auto" picks from the file suffix; unknown suffixes default to ONNX.
    """
    path = Path(model_path)
    if backend == "auto":
        backend = "torch" if path.suffix.lower() in TORCH_SUFFIXES else "onnx"
    if backend == "onnx":
        return OnnxSession(path, input_size=input_size, providers=providers)
    if backend == "torch":
        return TorchScriptSession(path, input_size=input_size, device=device)
    raise ValueError(f"Unknown backend: {backend!r}")


def open_session(model_path: Union[str, Path], backend: str = "auto", **kwargs) -> SegmentationSession:
    """create_session(...).open(); the returned session must be closed by the caller."""
    return create_session(model_path, backend, **kwargs).open()
