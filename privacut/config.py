"""
Centralized configuration for the background removal core.

Ground rules:
- float32 tensors, batch size 1
- one square model input, stretched (no letterboxing)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# RMBG-1.4 (quantized ONNX export) expects a fixed 1024x1024 input.
INPUT_SIZE = 1024

# NOTE: not ImageNet statistics. The model was trained on [-0.5, 0.5] centered input.
NORM_MEAN = [0.5, 0.5, 0.5]
NORM_STD = [1.0, 1.0, 1.0]

MODEL_NAME = "model_quantized.onnx"

# Used when the runtime does not expose tensor names (TorchScript).
DEFAULT_INPUT_NAME = "input"
DEFAULT_OUTPUT_NAME = "output"

PACKAGED_ASSET_DIR = Path(__file__).parent / "assets"

ENV_PREFIX = "PRIVACUT_"


def default_cache_dir() -> Path:
    base = os.getenv("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return Path(base) / "privacut"


class Settings(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_name: str = MODEL_NAME
    models_dir: Path = Path("ml")
    asset_dir: Path = PACKAGED_ASSET_DIR
    cache_dir: Path = Field(default_factory=default_cache_dir)
    backend: Literal["auto", "onnx", "torch"] = "auto"
    device: Literal["auto", "cpu", "cuda", "mps"] = "auto"
    # Empty = pick from what onnxruntime reports as available.
    providers: List[str] = Field(default_factory=list)
    input_size: int = Field(default=INPUT_SIZE, gt=0)

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from defaults, then `.env` / PRIVACUT_* variables, then explicit overrides.

        Overrides set to None are ignored so argparse namespaces can be passed straight through.
        """
        load_dotenv()
        values = {}
        for field in cls.model_fields:
            raw = os.getenv(ENV_PREFIX + field.upper())
            if raw is None or raw == "":
                continue
            if field == "providers":
                values[field] = [p.strip() for p in raw.split(",") if p.strip()]
            else:
                values[field] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
