from typing import Optional
import json
import logging
import re

from pydantic import ValidationError

from storygen.models.manager import ModelManager
from .types import StoryAnalysis

logger = logging.getLogger(__name__)

ANALYSIS_TASK = "story_analysis"
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_analysis(text: str) -> StoryAnalysis:
    """
    Pull the text-block report out of a free-form model answer.

    Models wrap the JSON in prose or code fences, so the outermost {...} span is
    parsed. Anything that is not a textBlocks report is kept verbatim as
    raw_response for the user to read.
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return StoryAnalysis(raw_response=text)

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return StoryAnalysis(raw_response=text)

    if not isinstance(data, dict) or not isinstance(data.get("textBlocks"), list):
        return StoryAnalysis(raw_response=text)

    try:
        return StoryAnalysis.model_validate({"textBlocks": data["textBlocks"]})
    except ValidationError as e:
        logger.warning(f"Text blocks did not match schema: {e}")
        return StoryAnalysis(raw_response=text)


class StoryTextAnalyzer:
    def __init__(self, model_manager: ModelManager, task: str = ANALYSIS_TASK):
        self.model_manager = model_manager
        self.task = task

    def analyze(self, image_url: str, prompt_ref: Optional[str] = None) -> StoryAnalysis:
        logger.info(f"Analyzing story text for {image_url}")
        response = self.model_manager.call(
            task=self.task,
            prompt_ref=prompt_ref,
            variables={},
            images=[image_url],
        )
        logger.debug(f"Raw analysis output: {response.content[:500]}")

        analysis = parse_analysis(response.content)
        if analysis.raw_response is not None:
            logger.warning("Analysis output had no usable textBlocks, returning raw text")
        else:
            logger.info(f"Found {len(analysis.text_blocks)} text blocks")
        return analysis
