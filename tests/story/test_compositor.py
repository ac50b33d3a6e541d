import io

import pytest
from PIL import Image

from storygen.pipeline.story.compositor import (
    validate_image, load_image, stitch_images, PANEL_WIDTH, PANEL_HEIGHT,
)
from storygen.pipeline.story.errors import UnsupportedImageError
from storygen.pipeline.story.types import ImageUpload


class TestValidateImage:

    def test_accepts_png_and_jpeg(self, red_png, blue_jpeg):
        assert validate_image(red_png, "image/png", "story.png").format == "PNG"
        assert validate_image(blue_jpeg, "image/jpeg", "product.jpg").format == "JPEG"

    def test_extension_is_enough_without_content_type(self, red_png):
        assert validate_image(red_png, None, "story.PNG").size == (100, 200)

    def test_rejects_other_types(self, red_png):
        with pytest.raises(UnsupportedImageError, match="Unsupported file type"):
            validate_image(red_png, "image/gif", "story.gif")

    def test_rejects_empty_upload(self):
        with pytest.raises(UnsupportedImageError, match="empty"):
            validate_image(b"", "image/png", "story.png")

    def test_rejects_bytes_that_are_not_an_image(self):
        with pytest.raises(UnsupportedImageError, match="Could not read image"):
            validate_image(b"definitely not a png", "image/png", "story.png")

    def test_rejects_mislabelled_format(self, image_bytes):
        gif = image_bytes(fmt="GIF", mode="P", color=0)
        with pytest.raises(UnsupportedImageError, match="Unsupported image format: GIF"):
            validate_image(gif, "image/png", "story.png")


class TestStitchImages:

    def _decode(self, stitched):
        return Image.open(io.BytesIO(stitched.data))

    def test_composite_is_two_stretched_panels(self, red_png, blue_jpeg):
        stitched = stitch_images(
            ImageUpload(red_png, "story.png", "image/png"),
            ImageUpload(blue_jpeg, "product.jpg", "image/jpeg"),
        )

        img = self._decode(stitched)
        assert (stitched.width, stitched.height) == (PANEL_WIDTH * 2, PANEL_HEIGHT)
        assert img.format == "JPEG"
        assert img.size == (2160, 1920)
        assert stitched.content_type == "image/jpeg"

        left = img.getpixel((PANEL_WIDTH // 2, PANEL_HEIGHT // 2))
        right = img.getpixel((PANEL_WIDTH + PANEL_WIDTH // 2, PANEL_HEIGHT // 2))
        assert left[0] > 200 and left[2] < 60
        assert right[2] > 200 and right[0] < 60

    def test_transparent_areas_become_white(self, image_bytes):
        clear = image_bytes((0, 0, 0, 0), mode="RGBA")
        stitched = stitch_images(
            ImageUpload(clear, "story.png", "image/png"),
            ImageUpload(image_bytes((0, 0, 255)), "product.png", "image/png"),
        )

        pixel = self._decode(stitched).getpixel((10, 10))
        assert all(channel > 240 for channel in pixel)

    def test_accepts_catalog_paths(self, catalog_dir):
        stitched = stitch_images(catalog_dir / "story_model_1.png", str(catalog_dir / "product_1.png"))
        assert stitched.width == 2160

    def test_rejects_bad_upload(self, red_png):
        with pytest.raises(UnsupportedImageError):
            stitch_images(ImageUpload(red_png, "story.png", "image/png"), ImageUpload(b"nope", "p.png", "image/png"))


def test_load_image_passes_pil_images_through():
    img = Image.new("RGB", (2, 2))
    assert load_image(img) is img
