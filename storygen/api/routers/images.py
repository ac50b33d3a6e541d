"""
Catalog of bundled story templates and products.
"""
from fastapi import APIRouter, Depends, HTTPException

from ..models.story import ImageCatalogResponse, APICatalogItem
from ..dependencies.session import get_image_catalog
from storygen.pipeline.story.catalog import ImageCatalog
from storygen.pipeline.story.errors import CatalogError

router = APIRouter()

@router.get("", response_model=ImageCatalogResponse)
async def list_images(catalog: ImageCatalog = Depends(get_image_catalog)):
    try:
        listing = catalog.scan()
    except CatalogError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return ImageCatalogResponse(
        story_models=[APICatalogItem(path=i.path, filename=i.filename, caption=i.caption) for i in listing.story_models],
        products=[APICatalogItem(path=i.path, filename=i.filename, caption=i.caption) for i in listing.products],
    )
