from typing import Any, Optional
import logging

from storygen.models.manager import ModelManager
from storygen.models.providers.base import ModelError
from .types import GeneratedStory, StoryAnalysis
from .prompting import build_change_prompt
from .errors import MissingInputError

logger = logging.getLogger(__name__)

GENERATION_TASK = "story_generation"
EDIT_TASK = "story_edit"


def first_image_url(output: Any) -> Optional[str]:
    """Image models answer with a URL or a list of URLs."""
    if isinstance(output, str) and output:
        return output
    if isinstance(output, list) and output:
        return str(output[0])
    return None


class StoryGenerator:
    def __init__(self, model_manager: ModelManager, generation_task: str = GENERATION_TASK, edit_task: str = EDIT_TASK):
        self.model_manager = model_manager
        self.generation_task = generation_task
        self.edit_task = edit_task

    def generate(self, image: bytes, prompt: str, filename: str = "stitched-image.jpg", content_type: str = "image/jpeg") -> GeneratedStory:
        """Turn a story/product composite into a story image."""
        if not prompt or not prompt.strip():
            raise MissingInputError("No prompt provided")
        if not image:
            raise MissingInputError("No image uploaded")

        image_url = self.model_manager.upload(image, filename, content_type, task=self.generation_task)
        prediction = self.model_manager.predict(self.generation_task, prompt, image_url=image_url)

        generated_url = first_image_url(prediction.output)
        if not generated_url:
            raise ModelError(f"Unexpected output format from {self.generation_task}: {prediction.output!r}")
        logger.info(f"Generated story {generated_url}")
        return GeneratedStory(image_url=generated_url, prompt=prompt, output=prediction.output, prediction_id=prediction.id)

    def apply_changes(self, image_url: str, prompt: Optional[str] = None, analysis: Optional[StoryAnalysis] = None) -> GeneratedStory:
        """
        Regenerate a story with edits. An explicit prompt wins; otherwise the
        prompt is built from the text blocks the user changed.
        """
        if not image_url:
            raise MissingInputError("No image provided")
        if prompt and prompt.strip():
            prompt = prompt.strip()
        elif analysis is not None:
            prompt = build_change_prompt(self.model_manager, analysis)
        else:
            raise MissingInputError("No prompt or analysis result provided")

        logger.info(f"Applying changes to {image_url}")
        prediction = self.model_manager.predict(self.edit_task, prompt, image_url=image_url)

        generated_url = first_image_url(prediction.output)
        if not generated_url:
            logger.error(f"Unexpected output format: {prediction.output!r}")
            raise ModelError(f"Unexpected output format from {self.edit_task}")
        return GeneratedStory(image_url=generated_url, prompt=prompt, output=prediction.output, prediction_id=prediction.id)

    def apply_changes_to_upload(self, image: bytes, filename: str, content_type: str, prompt: str) -> GeneratedStory:
        """Edit an image the user brought instead of a generated version."""
        if not prompt or not prompt.strip():
            raise MissingInputError("No prompt provided")
        image_url = self.model_manager.upload(image, filename, content_type, task=self.edit_task)
        return self.apply_changes(image_url, prompt=prompt)
