from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from privacut import cli as cli_mod


def _write_dummy_image(path: Path, size=(12, 9), color=(200, 100, 50)) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(str(path), format="PNG")


@pytest.fixture
def small_input(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PRIVACUT_INPUT_SIZE", "8")
    in_dir = tmp_path / "in"
    _write_dummy_image(in_dir / "a.jpg")
    _write_dummy_image(in_dir / "sub" / "b.png", size=(6, 10))
    return in_dir


def _patch_session(monkeypatch, make_session, **kwargs):
    created = []

    def _create(model_path, backend="auto", **kw):
        s = make_session(model_path=model_path, input_size=kw.get("input_size", 8), **kwargs)
        created.append(s)
        return s

    monkeypatch.setattr(cli_mod, "create_session", _create)
    return created


def test_cli_writes_rgba_pngs(monkeypatch, make_session, model_file, small_input, tmp_path, capsys):
    created = _patch_session(monkeypatch, make_session)
    out_dir = tmp_path / "out"

    code = cli_mod.main([str(small_input), "--output", str(out_dir), "--model", str(model_file)])

    assert code == 0
    for rel, size in (("a.png", (12, 9)), ("sub/b.png", (6, 10))):
        with Image.open(out_dir / rel) as img:
            assert img.mode == "RGBA"
            assert img.size == size
    assert created[0].state.value == "closed"
    assert "Done. 2 images" in capsys.readouterr().out


def test_cli_rotation(monkeypatch, make_session, model_file, small_input, tmp_path):
    _patch_session(monkeypatch, make_session)
    out_dir = tmp_path / "out"
    code = cli_mod.main([str(small_input / "a.jpg"), "--output", str(out_dir), "--model", str(model_file), "--rotate", "90"])
    assert code == 0
    with Image.open(out_dir / "a.png") as img:
        assert img.size == (9, 12)


def test_cli_fallback_keeps_original(monkeypatch, make_session, model_file, small_input, tmp_path):
    def _fail(_t):
        raise RuntimeError("boom")

    _patch_session(monkeypatch, make_session, run=_fail)
    out_dir = tmp_path / "out"

    code = cli_mod.main([str(small_input), "--output", str(out_dir), "--model", str(model_file)])

    assert code == 1
    with Image.open(out_dir / "a.png") as img:
        px = np.asarray(img)
    assert (px[..., 3] == 255).all()


def test_cli_missing_model_exits_2(small_input, tmp_path, capsys):
    code = cli_mod.main([str(small_input), "--output", str(tmp_path / "out"), "--model", str(tmp_path / "none.onnx")])
    assert code == 2
    assert "Model initialization failed" in capsys.readouterr().out
    assert not (tmp_path / "out").exists()


def test_cli_skips_unreadable_image_and_continues(monkeypatch, make_session, model_file, small_input, tmp_path, capsys):
    _patch_session(monkeypatch, make_session)
    (small_input / "broken.png").write_bytes(b"not an image")
    out_dir = tmp_path / "out"

    code = cli_mod.main([str(small_input), "--output", str(out_dir), "--model", str(model_file)])

    assert code == 1
    assert (out_dir / "a.png").exists()
    assert (out_dir / "sub" / "b.png").exists()
    assert not (out_dir / "broken.png").exists()
    out = capsys.readouterr().out
    assert "broken.png: skipped" in out
    assert "1 skipped" in out
