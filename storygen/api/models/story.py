"""
API models for the story endpoints.

These define the contract with the browser front-end. Text analysis results are
passed through as plain dicts so their camelCase keys (textBlocks, newContent,
...) reach the client unchanged.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional

from .common import APIResponse

# Catalog
class APICatalogItem(BaseModel):
    path: str = Field(..., description="URL path of the bundled image")
    filename: str
    caption: str

class ImageCatalogResponse(BaseModel):
    story_models: List[APICatalogItem]
    products: List[APICatalogItem]

# Stitch
class StitchData(BaseModel):
    session_id: str
    stitched_image_base64: str = Field(..., description="Composite as base64 JPEG")
    width: int
    height: int
    prompt: str = Field(..., description="Default generation prompt for this product")
    product_caption: Optional[str] = None

class StitchResponse(APIResponse):
    data: Optional[StitchData] = None

# Generate / apply changes
class StoryVersionData(BaseModel):
    session_id: Optional[str] = None
    image_url: str
    prompt: str
    output: Optional[Any] = Field(None, description="Raw model output")
    versions: List[str] = Field(default_factory=list)
    current_version: int = 0
    processing_time: float

class StoryVersionResponse(APIResponse):
    data: Optional[StoryVersionData] = None

class ApplyChangesRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Session whose current version is edited")
    image_url: Optional[str] = Field(None, description="Image to edit, defaults to the session's current version")
    analysis_result: Optional[Dict[str, Any]] = Field(None, description="Analysis with edited text blocks")
    custom_prompt: Optional[str] = Field(None, description="Prompt sent as-is to the editing model")

    class Config:
        json_schema_extra = {
            "example": {
                "image_url": "https://replicate.delivery/xezq/story.jpg",
                "analysis_result": {
                    "textBlocks": [
                        {"type": "Title", "content": "New Car!", "newContent": "New Bike!", "originalContent": "New Car!"}
                    ]
                },
                "custom_prompt": None
            }
        }

# Analysis
class AnalyzeRequest(BaseModel):
    session_id: Optional[str] = None
    image_url: Optional[str] = None

class AnalysisData(BaseModel):
    analysis: Dict[str, Any]
    change_prompt: Optional[str] = Field(None, description="Prompt built from edited blocks, if any")
    processing_time: Optional[float] = None

class AnalysisResponse(APIResponse):
    data: Optional[AnalysisData] = None

class TextBlockEditRequest(BaseModel):
    text: str = Field(..., description="Replacement content for the block")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        if not v or v.strip() == "":
            raise ValueError("Replacement text cannot be empty")
        return v.strip()

# Session state
class SessionData(BaseModel):
    session_id: str
    prompt: Optional[str] = None
    story_source: Optional[str] = None
    product_source: Optional[str] = None
    product_caption: Optional[str] = None
    has_stitched_image: bool
    versions: List[str]
    current_version: int
    current_image_url: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None
    change_prompt: Optional[str] = None

class SessionResponse(APIResponse):
    data: Optional[SessionData] = None
