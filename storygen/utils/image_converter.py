from __future__ import annotations
from pathlib import Path
from typing import Union
import base64
import io
from PIL import Image


def is_remote(image_data) -> bool:
    return isinstance(image_data, str) and image_data.startswith(("http://", "https://", "data:"))


def to_jpeg_bytes(image: Image.Image, quality: int = 90) -> bytes:
    """Flatten onto white (JPEG has no alpha) and encode."""
    if image.mode in ('RGBA', 'LA', 'P'):
        rgba = image.convert('RGBA')
        flat = Image.new('RGB', rgba.size, (255, 255, 255))
        flat.paste(rgba, mask=rgba.split()[-1])
        image = flat
    elif image.mode != 'RGB':
        image = image.convert('RGB')

    buffer = io.BytesIO()
    image.save(buffer, format='JPEG', quality=quality)
    return buffer.getvalue()


def to_base64(image_data: Union[str, Path, bytes, Image.Image]) -> str:
    if isinstance(image_data, (str, Path)):
        path = Path(image_data)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {image_data}")
        with Image.open(path) as img:
            return to_base64(img.copy())

    elif isinstance(image_data, bytes):
        return base64.b64encode(image_data).decode('utf-8')

    elif isinstance(image_data, Image.Image):
        if image_data.mode in ('RGBA', 'P'):
            image_data = image_data.convert('RGB')

        buffer = io.BytesIO()
        image_data.save(buffer, format='PNG')
        return base64.b64encode(buffer.getvalue()).decode('utf-8')

    else:
        raise ValueError(f"Unsupported image data type: {type(image_data)}")


def to_image_url(image_data) -> str:
    """Remote URLs pass through; anything else becomes a PNG data URL."""
    if is_remote(image_data):
        return image_data
    return f"data:image/png;base64,{to_base64(image_data)}"
