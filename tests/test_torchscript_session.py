from pathlib import Path
from typing import Tuple

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from privacut.errors import ModelLoadFailed  # noqa: E402
from privacut.preprocess import preprocess  # noqa: E402
from privacut.session import SessionState, TorchScriptSession  # noqa: E402


class MeanSaliency(torch.nn.Module):
    """Saliency = channel mean; also returns the input to exercise tuple outputs."""

    def forward(self, x: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        return x.mean(dim=1, keepdim=True), x


def _save_model(path: Path) -> Path:
    torch.jit.save(torch.jit.script(MeanSaliency()), str(path))
    return path


def test_torchscript_session_runs_on_cpu(tmp_path: Path):
    path = _save_model(tmp_path / "saliency.pt")
    x = preprocess(np.full((5, 7, 3), 200, dtype=np.uint8), size=8)

    with TorchScriptSession(path, input_size=8, device="cpu") as session:
        assert session.input_name == "input"
        assert session.output_name == "output"
        out = session.infer(x)

    assert out.shape == (1, 1, 8, 8)
    np.testing.assert_allclose(out, 200.0 / 255.0 - 0.5, atol=1e-6)
    assert session.state is SessionState.CLOSED


def test_torchscript_session_rejects_non_torchscript_file(tmp_path: Path):
    path = tmp_path / "weights.pt"
    path.write_bytes(b"not a torchscript archive")
    session = TorchScriptSession(path, input_size=8, device="cpu")
    with pytest.raises(ModelLoadFailed):
        session.open()
    assert session.state is SessionState.FAILED
