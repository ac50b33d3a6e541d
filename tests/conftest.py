import io

import pytest
from PIL import Image


def make_image_bytes(color=(255, 0, 0), size=(100, 200), fmt="PNG", mode="RGB") -> bytes:
    img = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def red_png():
    return make_image_bytes((255, 0, 0), fmt="PNG")


@pytest.fixture
def blue_jpeg():
    return make_image_bytes((0, 0, 255), size=(300, 150), fmt="JPEG")


@pytest.fixture
def catalog_dir(tmp_path):
    """A small image directory laid out like the bundled catalog."""
    img_dir = tmp_path / "img"
    img_dir.mkdir()
    (img_dir / "story_model_2.png").write_bytes(make_image_bytes((0, 255, 0)))
    (img_dir / "story_model_1.png").write_bytes(make_image_bytes((255, 0, 0)))
    (img_dir / "product_1.png").write_bytes(make_image_bytes((0, 0, 255)))
    (img_dir / "notes.txt").write_text("not an image")
    return img_dir


@pytest.fixture
def image_bytes():
    return make_image_bytes
