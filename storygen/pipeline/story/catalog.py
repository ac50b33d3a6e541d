"""
Bundled story templates and product shots.

Images live in one flat directory. ``story_model_<n>`` files are backgrounds,
``product_<n>`` files are products; captions come from captions.yaml.
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from os import getenv
import logging
import re
import yaml

from .types import CatalogItem, ImageCatalogListing
from .errors import CatalogError, UnknownImageError

logger = logging.getLogger(__name__)

STORY_MODEL_PREFIX = "story_model_"
PRODUCT_PREFIX = "product_"
IMAGE_EXTENSIONS = re.compile(r"\.(png|jpg|jpeg)$", re.IGNORECASE)
_FIRST_NUMBER = re.compile(r"\d+")

DEFAULT_CAPTIONS_PATH = Path(__file__).parents[2] / "config" / "captions.yaml"


def default_image_dir() -> Path:
    return Path(getenv("STORYGEN_IMAGE_DIR", "public/img"))


def load_captions(path: Union[Path, str, None] = None) -> Dict[str, Dict[str, str]]:
    path = Path(path or getenv("STORYGEN_CAPTIONS") or DEFAULT_CAPTIONS_PATH)
    if not path.exists():
        logger.warning(f"Captions file not found: {path}")
        return {"story_models": {}, "products": {}}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {
        "story_models": dict(data.get("story_models") or {}),
        "products": dict(data.get("products") or {}),
    }


def caption_for(filename: str, captions: Dict[str, str]) -> str:
    if filename in captions:
        return captions[filename]
    return IMAGE_EXTENSIONS.sub("", filename)


def _sort_key(filename: str) -> int:
    match = _FIRST_NUMBER.search(filename)
    return int(match.group()) if match else 0


class ImageCatalog:
    def __init__(self, image_dir: Union[Path, str, None] = None, captions: Optional[Dict[str, Dict[str, str]]] = None, url_prefix: str = "/img"):
        self.image_dir = Path(image_dir) if image_dir else default_image_dir()
        self.captions = captions if captions is not None else load_captions()
        self.url_prefix = url_prefix.rstrip("/")

    def _collect(self, files: List[str], prefix: str, captions: Dict[str, str]) -> List[CatalogItem]:
        matching = [f for f in files if f.startswith(prefix) and IMAGE_EXTENSIONS.search(f)]
        return [
            CatalogItem(path=f"{self.url_prefix}/{f}", filename=f, caption=caption_for(f, captions))
            for f in sorted(matching, key=_sort_key)
        ]

    def scan(self) -> ImageCatalogListing:
        try:
            files = [p.name for p in self.image_dir.iterdir() if p.is_file()]
        except OSError as e:
            logger.error(f"Error scanning images in {self.image_dir}: {e}")
            raise CatalogError("Failed to scan images") from e

        return ImageCatalogListing(
            story_models=self._collect(files, STORY_MODEL_PREFIX, self.captions["story_models"]),
            products=self._collect(files, PRODUCT_PREFIX, self.captions["products"]),
        )

    def resolve(self, filename: str) -> Tuple[CatalogItem, Path]:
        """Look up a bundled image by name. Only names the scan would list are accepted."""
        listing = self.scan()
        for item in listing.story_models + listing.products:
            if item.filename == filename:
                return item, self.image_dir / item.filename
        raise UnknownImageError(f"Unknown catalog image: {filename}")
