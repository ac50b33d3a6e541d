"""
Story API endpoints: stitch, generate, analyze, edit and version history.

Model calls block for up to a few minutes while predictions are polled, so they
run in the threadpool rather than on the event loop.
"""
import base64
import logging
import time
from contextlib import contextmanager
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import ValidationError

from ..models.story import (
    StitchResponse, StitchData,
    StoryVersionResponse, StoryVersionData, ApplyChangesRequest,
    AnalyzeRequest, AnalysisResponse, AnalysisData, TextBlockEditRequest,
    SessionResponse, SessionData,
)
from ..dependencies.session import (
    get_session_manager, get_model_manager, get_image_catalog,
    SessionManager, StorySession, VersionNotFound,
)
from storygen.models.manager import ModelManager
from storygen.models.providers.base import ModelError, MissingCredentials
from storygen.pipeline.story.catalog import ImageCatalog
from storygen.pipeline.story.compositor import ImageSource, stitch_images, validate_image
from storygen.pipeline.story.errors import StoryError, CatalogError, UnknownImageError, MissingInputError
from storygen.pipeline.story.types import ImageUpload, StoryAnalysis
from storygen.pipeline.story.prompting import default_story_prompt, build_change_prompt, edit_text_block
from storygen.pipeline.story.analysis import StoryTextAnalyzer
from storygen.pipeline.story.generation import StoryGenerator

logger = logging.getLogger(__name__)

router = APIRouter()

DOWNLOAD_FILENAME = "instagram-story.jpg"


@contextmanager
def translate_errors(action: str):
    """Map pipeline and provider failures onto HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except UnknownImageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except StoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MissingCredentials as e:
        logger.error(f"{action}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except (ModelError, ValueError) as e:
        logger.error(f"{action}: {e}")
        raise HTTPException(status_code=500, detail=f"{action}: {e}")


def _require_session(session_manager: SessionManager, session_id: str) -> StorySession:
    session = session_manager.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return session


def _optional_session(session_manager: SessionManager, session_id: Optional[str]) -> Optional[StorySession]:
    return _require_session(session_manager, session_id) if session_id else None


def _version_data(session: StorySession, story, processing_time: float) -> StoryVersionData:
    return StoryVersionData(
        session_id=session.session_id,
        image_url=story.image_url,
        prompt=story.prompt,
        output=story.output,
        versions=list(session.versions),
        current_version=session.current_version,
        processing_time=processing_time,
    )


def _session_data(session: StorySession) -> SessionData:
    return SessionData(
        session_id=session.session_id,
        prompt=session.prompt,
        story_source=session.story_source,
        product_source=session.product_source,
        product_caption=session.product_caption,
        has_stitched_image=session.stitched_image is not None,
        versions=list(session.versions),
        current_version=session.current_version,
        current_image_url=session.current_image_url,
        analysis=session.analysis.to_wire() if session.analysis else None,
        change_prompt=session.change_prompt,
    )


async def _resolve_source(upload: Optional[UploadFile], catalog_name: Optional[str], catalog: ImageCatalog, kind: str) -> Tuple[ImageSource, str, Optional[str]]:
    """An uploaded file wins over a catalog pick, the same as in the picker UI."""
    if upload is not None and upload.filename:
        data = await upload.read()
        return ImageUpload(data=data, filename=upload.filename, content_type=upload.content_type), upload.filename, None
    if catalog_name:
        item, path = catalog.resolve(catalog_name)
        return path, item.filename, item.caption
    raise MissingInputError(f"No {kind} image provided")


@router.post("/stitch", response_model=StitchResponse)
async def stitch(
    story_image: Optional[UploadFile] = File(None),
    product_image: Optional[UploadFile] = File(None),
    story_model: Optional[str] = Form(None),
    product: Optional[str] = Form(None),
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
    catalog: ImageCatalog = Depends(get_image_catalog),
):
    with translate_errors("Failed to stitch images"):
        story_source, story_label, _ = await _resolve_source(story_image, story_model, catalog, "story")
        product_source, product_label, caption = await _resolve_source(product_image, product, catalog, "product")
        stitched = await run_in_threadpool(stitch_images, story_source, product_source)
        prompt = default_story_prompt(model_manager, caption)

    session = session_manager.create_session(
        stitched_image=stitched.data,
        story_source=story_label,
        product_source=product_label,
        product_caption=caption,
        prompt=prompt,
    )
    return StitchResponse(
        success=True,
        message="Images stitched",
        data=StitchData(
            session_id=session.session_id,
            stitched_image_base64=base64.b64encode(stitched.data).decode("utf-8"),
            width=stitched.width,
            height=stitched.height,
            prompt=prompt,
            product_caption=caption,
        ),
    )


@router.post("/generate", response_model=StoryVersionResponse)
async def generate_story(
    prompt: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    session_id: Optional[str] = Form(None),
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    """
    Generate a story from a composite. The image is either uploaded with the
    request or taken from the session's stitched composite.
    """
    start_time = time.time()
    session = _optional_session(session_manager, session_id)

    with translate_errors("Generation failed"):
        if image is not None and image.filename:
            data = await image.read()
            validate_image(data, image.content_type, image.filename)
            filename, content_type = image.filename, image.content_type or "image/jpeg"
        elif session is not None and session.stitched_image:
            data, filename, content_type = session.stitched_image, "stitched-image.jpg", "image/jpeg"
        else:
            raise MissingInputError("No image uploaded")

        prompt = prompt or (session.prompt if session else None)
        if not prompt:
            raise MissingInputError("No prompt provided")

        generator = StoryGenerator(model_manager)
        story = await run_in_threadpool(generator.generate, data, prompt, filename, content_type)

    if session is None:
        session = session_manager.create_session()
    session.prompt = prompt
    session.start_versions(story.image_url)

    return StoryVersionResponse(
        success=True,
        message="Image generated successfully!",
        data=_version_data(session, story, time.time() - start_time),
    )


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_story(
    request: AnalyzeRequest,
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    start_time = time.time()
    session = _optional_session(session_manager, request.session_id)
    image_url = request.image_url or (session.current_image_url if session else None)
    if not image_url:
        raise HTTPException(status_code=400, detail="No image URL provided")

    with translate_errors("Failed to analyze story"):
        analyzer = StoryTextAnalyzer(model_manager)
        analysis = await run_in_threadpool(analyzer.analyze, image_url)

    if session is not None:
        session.analysis = analysis
        session.change_prompt = None

    return AnalysisResponse(
        success=True,
        message="Story analyzed",
        data=AnalysisData(analysis=analysis.to_wire(), processing_time=time.time() - start_time),
    )


@router.put("/{session_id}/text-blocks/{index}", response_model=AnalysisResponse)
async def edit_block(
    session_id: str,
    index: int,
    request: TextBlockEditRequest,
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    """Record new content for one text block and rebuild the change prompt."""
    session = _require_session(session_manager, session_id)
    if session.analysis is None:
        raise HTTPException(status_code=400, detail="Analyze the story before editing text blocks")

    try:
        session.analysis = edit_text_block(session.analysis, index, request.text)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))

    with translate_errors("Failed to build change prompt"):
        session.change_prompt = build_change_prompt(model_manager, session.analysis)

    return AnalysisResponse(
        success=True,
        message="Text block updated",
        data=AnalysisData(analysis=session.analysis.to_wire(), change_prompt=session.change_prompt),
    )


@router.post("/apply-changes", response_model=StoryVersionResponse)
async def apply_changes(
    request: ApplyChangesRequest,
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    start_time = time.time()
    session = _optional_session(session_manager, request.session_id)
    image_url = request.image_url or (session.current_image_url if session else None)

    analysis = session.analysis if session else None
    if request.analysis_result is not None:
        try:
            analysis = StoryAnalysis.model_validate(request.analysis_result)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid analysis result: {e}")

    with translate_errors("Failed to apply changes"):
        generator = StoryGenerator(model_manager)
        story = await run_in_threadpool(generator.apply_changes, image_url, request.custom_prompt, analysis)

    if session is None:
        return StoryVersionResponse(
            success=True,
            message="Changes applied",
            data=StoryVersionData(image_url=story.image_url, prompt=story.prompt, output=story.output,
                                  versions=[story.image_url], processing_time=time.time() - start_time),
        )

    session.add_version(story.image_url)
    return StoryVersionResponse(
        success=True,
        message="Changes applied",
        data=_version_data(session, story, time.time() - start_time),
    )


@router.post("/apply-changes/upload", response_model=StoryVersionResponse)
async def apply_changes_to_upload(
    custom_image: Optional[UploadFile] = File(None),
    custom_prompt: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None),
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    """Edit an image the user uploads instead of the current version."""
    start_time = time.time()
    session = _optional_session(session_manager, session_id)
    if custom_image is None or not custom_image.filename:
        raise HTTPException(status_code=400, detail="No custom image provided")
    if not custom_prompt or not custom_prompt.strip():
        raise HTTPException(status_code=400, detail="No prompt provided")

    with translate_errors("Failed to apply changes"):
        data = await custom_image.read()
        validate_image(data, custom_image.content_type, custom_image.filename)
        generator = StoryGenerator(model_manager)
        story = await run_in_threadpool(
            generator.apply_changes_to_upload, data, custom_image.filename,
            custom_image.content_type or "image/jpeg", custom_prompt,
        )

    if session is None:
        session = session_manager.create_session()
    session.add_version(story.image_url)
    return StoryVersionResponse(
        success=True,
        message="Changes applied",
        data=_version_data(session, story, time.time() - start_time),
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_story_session(session_id: str, session_manager: SessionManager = Depends(get_session_manager)):
    session = _require_session(session_manager, session_id)
    return SessionResponse(success=True, data=_session_data(session))


@router.get("/{session_id}/stitched")
async def get_stitched_image(session_id: str, session_manager: SessionManager = Depends(get_session_manager)):
    session = _require_session(session_manager, session_id)
    if not session.stitched_image:
        raise HTTPException(status_code=404, detail="No stitched image in this session")
    return Response(content=session.stitched_image, media_type="image/jpeg")


@router.post("/{session_id}/versions/{index}/select", response_model=SessionResponse)
async def select_version(session_id: str, index: int, session_manager: SessionManager = Depends(get_session_manager)):
    session = _require_session(session_manager, session_id)
    try:
        session.select_version(index)
    except VersionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SessionResponse(success=True, message=f"Version {index + 1} of {len(session.versions)}", data=_session_data(session))


@router.get("/{session_id}/download")
async def download_story(
    session_id: str,
    session_manager: SessionManager = Depends(get_session_manager),
    model_manager: ModelManager = Depends(get_model_manager),
):
    session = _require_session(session_manager, session_id)
    if not session.current_image_url:
        raise HTTPException(status_code=404, detail="No generated story to download")

    try:
        content, media_type = await run_in_threadpool(model_manager.fetch, session.current_image_url)
    except ModelError as e:
        logger.error(f"Failed to download image: {e}")
        raise HTTPException(status_code=500, detail="Failed to download image")

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{DOWNLOAD_FILENAME}"'},
    )


@router.delete("/{session_id}")
async def reset_story(session_id: str, session_manager: SessionManager = Depends(get_session_manager)):
    if not session_manager.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found or expired")
    return {"success": True, "message": "Session cleared"}
