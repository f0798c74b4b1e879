from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from privacut.image import ImageBuffer
from privacut.io import iter_images, load_image, rotate_image


def _gradient(h: int = 10, w: int = 20) -> ImageBuffer:
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[..., 0] = np.arange(w, dtype=np.uint8)[None, :] * 10
    img[..., 1] = np.arange(h, dtype=np.uint8)[:, None] * 20
    img[..., 2] = 255
    return ImageBuffer.from_array(img)


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")


# -------- rotate_image --------

def test_rotate_90_is_clockwise():
    img = _gradient()
    out = rotate_image(img, 90)
    assert (out.height, out.width) == (img.width, img.height)
    # top-left of the result is the bottom-left of the source
    np.testing.assert_array_equal(out.pixels[0, 0], img.pixels[img.height - 1, 0])
    np.testing.assert_array_equal(out.pixels, np.rot90(img.pixels, k=-1))


def test_rotate_negative_angle_is_counter_clockwise():
    img = _gradient()
    out = rotate_image(img, -90)
    np.testing.assert_array_equal(out.pixels, np.rot90(img.pixels, k=1))
    np.testing.assert_array_equal(out.pixels, rotate_image(img, 270).pixels)


def test_rotate_full_turn_is_identity():
    img = _gradient()
    np.testing.assert_array_equal(rotate_image(img, 360).pixels, img.pixels)
    np.testing.assert_array_equal(rotate_image(img, -180).pixels, rotate_image(img, 180).pixels)


def test_rotate_arbitrary_angle_expands_canvas():
    img = _gradient()
    out = rotate_image(img, 45)

    assert isinstance(out, ImageBuffer)
    assert out.channels == 3
    assert out.width > img.width
    assert out.height > img.height
    # corners fall outside the rotated source and are filled black
    for y, x in ((0, 0), (0, -1), (-1, 0), (-1, -1)):
        assert not out.pixels[y, x].any()


def test_rotate_arbitrary_negative_angle_mirrors_size():
    img = _gradient()
    cw = rotate_image(img, 30)
    ccw = rotate_image(img, -30)
    assert (cw.width, cw.height) == (ccw.width, ccw.height)
    assert not np.array_equal(cw.pixels, ccw.pixels)


# -------- load_image --------

def test_load_image_returns_rgb_order(tmp_path: Path):
    path = tmp_path / "photo.png"
    Image.new("RGB", (7, 5), (200, 100, 50)).save(str(path), format="PNG")

    img = load_image(path)

    assert (img.width, img.height, img.channels) == (7, 5, 3)
    assert img.pixels[0, 0].tolist() == [200, 100, 50]


def test_load_image_drops_alpha(tmp_path: Path):
    path = tmp_path / "rgba.png"
    Image.new("RGBA", (4, 3), (10, 20, 30, 0)).save(str(path), format="PNG")
    img = load_image(path)
    assert not img.has_alpha


def test_load_image_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_image(tmp_path / "nope.jpg")


@pytest.mark.parametrize("payload", [b"", b"\x89PNG but not really", b"plain text"])
def test_load_image_undecodable_file(tmp_path: Path, payload: bytes):
    path = tmp_path / "bad.png"
    path.write_bytes(payload)
    with pytest.raises(FileNotFoundError, match="decode"):
        load_image(path)


# -------- iter_images --------

def test_iter_images_filters_by_suffix(tmp_path: Path):
    for rel in ("b.png", "a.JPG", "notes.txt", "sub/d.jpeg", "sub/e.webp", "sub/readme.md"):
        _touch(tmp_path / rel)

    found = [p.relative_to(tmp_path).as_posix() for p in iter_images(tmp_path)]

    assert found == ["a.JPG", "b.png", "sub/d.jpeg", "sub/e.webp"]


def test_iter_images_skips_hidden_entries_and_dirs(tmp_path: Path):
    _touch(tmp_path / "keep.png")
    _touch(tmp_path / ".hidden.png")
    _touch(tmp_path / ".cache" / "thumb.png")
    (tmp_path / "folder.png").mkdir()

    assert [p.name for p in iter_images(tmp_path)] == ["keep.png"]


def test_iter_images_custom_exts(tmp_path: Path):
    for rel in ("a.png", "b.jpg", "c.tif"):
        _touch(tmp_path / rel)
    assert [p.name for p in iter_images(tmp_path, exts=[".PNG", ".tif"])] == ["a.png", "c.tif"]
