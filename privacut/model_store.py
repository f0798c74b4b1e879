from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .errors import ModelMissing

logger = logging.getLogger(__name__)


def candidate_paths(settings: Settings) -> List[Path]:
    """Search order: user "models" directory, then the packaged asset bundle."""
    return [Path(settings.models_dir) / settings.model_name, Path(settings.asset_dir) / settings.model_name]


def _copy_atomic(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=dst.name + ".", suffix=".part", dir=str(dst.parent))
    os.close(fd)
    try:
        shutil.copyfile(src, tmp)
        os.replace(tmp, dst)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def resolve_model_path(settings: Optional[Settings] = None) -> Path:
    """
    Return a cached, private copy of the model file.

    An existing cache copy is returned as is. Otherwise the first hit from
    `candidate_paths` is copied into `settings.cache_dir`.
    """
    if settings is None:
        settings = Settings.from_env()

    cached = Path(settings.cache_dir) / settings.model_name
    if cached.is_file():
        logger.debug("Using cached model %s", cached)
        return cached

    searched = candidate_paths(settings)
    for src in searched:
        logger.debug("Looking for model at: %s", src)
        if not src.is_file():
            continue
        logger.info("Found model at %s, copying to cache %s", src, cached)
        try:
            _copy_atomic(src, cached)
        except OSError as e:
            raise ModelMissing(f"Could not copy model {src} to cache {cached}: {e}") from e
        return cached

    raise ModelMissing(
        f"Model {settings.model_name!r} not found. Searched: " + ", ".join(str(p) for p in searched)
    )
