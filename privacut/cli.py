from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from tqdm import tqdm

from .composite import save_rgba_png
from .config import Settings
from .errors import ModelLoadFailed, ModelMissing
from .io import iter_images, load_image, rotate_image
from .model_store import resolve_model_path
from .pipeline import StageTimings, remove_background
from .session import create_session

logger = logging.getLogger(__name__)


def _format_timings(t: StageTimings) -> str:
    stages = (
        ("pre", t.preprocess_s),
        ("inf", t.inference_s),
        ("post", t.postprocess_s),
        ("comp", t.composite_s),
    )
    return f"{t.total_s:.3f}s [" + " ".join(f"{name} {sec * 1000:.0f}ms" for name, sec in stages) + "]"


def _collect_inputs(input_path: Path) -> List[Tuple[Path, Path]]:
    """(image path, output path relative to the output dir) pairs."""
    if input_path.is_file():
        return [(input_path, Path(input_path.name).with_suffix(".png"))]
    return [(p, p.relative_to(input_path).with_suffix(".png")) for p in iter_images(input_path)]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="On-device background removal (RGBA PNG output).")
    parser.add_argument("input", type=str, help="Image file or directory of images.")
    parser.add_argument("--output", default="output", type=str, help="Output directory for RGBA PNGs.")
    parser.add_argument("--model", default=None, type=str, help="Explicit model file (skips model lookup/cache).")
    parser.add_argument("--models-dir", default=None, type=str, help="Primary directory searched for the model.")
    parser.add_argument("--cache-dir", default=None, type=str, help="Private cache the model is copied into.")
    parser.add_argument("--backend", default=None, choices=["auto", "onnx", "torch"])
    parser.add_argument("--device", default=None, choices=["auto", "cpu", "cuda", "mps"], help="Torch backend only.")
    parser.add_argument("--rotate", default=0.0, type=float, help="Rotate inputs clockwise by DEGREES first.")
    parser.add_argument("--log-level", default="WARNING", type=str, help="Python logging level.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = Settings.from_env(
        models_dir=args.models_dir,
        cache_dir=args.cache_dir,
        backend=args.backend,
        device=args.device,
    )

    input_path = Path(args.input)
    output_dir = Path(args.output)
    if not input_path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")

    jobs = _collect_inputs(input_path)
    if not jobs:
        print(f"No images found under {input_path}")
        return 0

    try:
        model_path = Path(args.model) if args.model else resolve_model_path(settings)
        session = create_session(
            model_path,
            settings.backend,
            input_size=settings.input_size,
            providers=settings.providers,
            device=settings.device,
        ).open()
    except (ModelMissing, ModelLoadFailed) as e:
        print(f"Model initialization failed: {e}")
        return 2

    fallbacks = 0
    skipped = 0
    total0 = time.perf_counter()
    with session:
        for img_path, rel_out in tqdm(jobs, desc="Removing background", unit="img"):
            try:
                image = load_image(img_path)
            except FileNotFoundError as e:
                skipped += 1
                logger.warning("Skipping %s: %s", img_path, e)
                print(f"{img_path.name}: skipped (unreadable)")
                continue
            if args.rotate:
                image = rotate_image(image, args.rotate)

            result = remove_background(image, session)
            save_rgba_png(result.image, output_dir / rel_out)

            if result.ok:
                print(f"{img_path.name}: {_format_timings(result.timings)}")
            else:
                fallbacks += 1
                print(f"{img_path.name}: background kept ({type(result.error).__name__}: {result.error})")

    elapsed = time.perf_counter() - total0
    print(f"Done. {len(jobs)} images in {elapsed:.2f}s ({fallbacks} unchanged, {skipped} skipped)")
    return 1 if (fallbacks or skipped) else 0


if __name__ == "__main__":
    raise SystemExit(main())
