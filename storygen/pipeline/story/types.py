from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Any, Optional

# Catalog types
@dataclass
class CatalogItem:
    path: str      # url path the browser loads, e.g. /img/product_1.png
    filename: str
    caption: str

@dataclass
class ImageCatalogListing:
    story_models: List[CatalogItem]
    products: List[CatalogItem]

# Upload/compose types
@dataclass
class ImageUpload:
    data: bytes
    filename: str
    content_type: Optional[str] = None

@dataclass
class StitchedImage:
    data: bytes     # JPEG
    width: int
    height: int
    content_type: str = "image/jpeg"

# Generation results
@dataclass
class GeneratedStory:
    image_url: str
    prompt: str
    output: Any = None
    prediction_id: Optional[str] = None

# Vision analysis schema. Wire keys stay camelCase to match what the model is asked for.
class TextBlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = "Text"
    content: str = ""
    typeface: Optional[str] = None
    color: Optional[str] = None
    new_content: Optional[str] = Field(None, alias="newContent")
    original_content: Optional[str] = Field(None, alias="originalContent")

    @field_validator("type", "content", "typeface", "color", mode="before")
    @classmethod
    def _stringify(cls, v, info):
        # models sometimes emit prices or years as numbers, or null for unknowns
        if v is None:
            return cls.model_fields[info.field_name].default
        if isinstance(v, str):
            return v
        return str(v)

    @property
    def has_change(self) -> bool:
        return bool(self.new_content)

class StoryAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text_blocks: List[TextBlock] = Field(default_factory=list, alias="textBlocks")
    raw_response: Optional[str] = Field(None, alias="rawResponse")

    def changed_blocks(self) -> List[TextBlock]:
        return [b for b in self.text_blocks if b.has_change]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
