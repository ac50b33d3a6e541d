from __future__ import annotations
from pathlib import Path
from typing import Optional, Union
import io
import logging

from PIL import Image, UnidentifiedImageError

from .types import ImageUpload, StitchedImage
from .errors import UnsupportedImageError
from ...utils.image_converter import to_jpeg_bytes

logger = logging.getLogger(__name__)

PANEL_WIDTH = 1080
PANEL_HEIGHT = 1920
JPEG_QUALITY = 90

ACCEPTED_CONTENT_TYPES = {"image/png", "image/jpeg", "image/jpg"}
ACCEPTED_EXTENSIONS = {".png", ".jpg", ".jpeg"}
ACCEPTED_FORMATS = {"PNG", "JPEG"}

ImageSource = Union[ImageUpload, Path, str, Image.Image]


def validate_image(data: bytes, content_type: Optional[str] = None, filename: Optional[str] = None) -> Image.Image:
    """Accept PNG/JPEG uploads only and make sure the bytes actually decode."""
    suffix = Path(filename).suffix.lower() if filename else ""
    if (content_type or "").lower() not in ACCEPTED_CONTENT_TYPES and suffix not in ACCEPTED_EXTENSIONS:
        raise UnsupportedImageError(f"Unsupported file type: {content_type or suffix or 'unknown'}. Use PNG or JPEG.")
    if not data:
        raise UnsupportedImageError("Uploaded image is empty")

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedImageError(f"Could not read image {filename or ''}: {e}") from e

    if image.format not in ACCEPTED_FORMATS:
        raise UnsupportedImageError(f"Unsupported image format: {image.format}")
    return image


def load_image(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, ImageUpload):
        return validate_image(source.data, source.content_type, source.filename)
    path = Path(source)
    with open(path, "rb") as f:
        return validate_image(f.read(), filename=path.name)


def stitch_images(story: ImageSource, product: ImageSource) -> StitchedImage:
    """
    Put the story template in the left panel and the product in the right one.

    Both images are stretched to fill their 1080x1920 panel, so the composite is
    always 2160x1920 regardless of the inputs' aspect ratios.
    """
    story_img = load_image(story).convert("RGBA")
    product_img = load_image(product).convert("RGBA")

    canvas = Image.new("RGBA", (PANEL_WIDTH * 2, PANEL_HEIGHT), (255, 255, 255, 255))
    for offset, panel in ((0, story_img), (PANEL_WIDTH, product_img)):
        resized = panel.resize((PANEL_WIDTH, PANEL_HEIGHT), Image.LANCZOS)
        canvas.alpha_composite(resized, dest=(offset, 0))

    data = to_jpeg_bytes(canvas, quality=JPEG_QUALITY)
    logger.info("Stitched composite %dx%d (%d bytes)", canvas.width, canvas.height, len(data))
    return StitchedImage(data=data, width=canvas.width, height=canvas.height)
