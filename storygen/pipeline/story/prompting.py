from typing import Optional

from storygen.models.manager import ModelManager
from .types import StoryAnalysis
from .errors import NoChangesError

GENERATE_PROMPT_REF = "story/generate@v1"
APPLY_CHANGES_PROMPT_REF = "story/apply_changes@v1"

UPLOADED_PRODUCT_DESCRIPTION = "the product"


def default_story_prompt(model_manager: ModelManager, product_description: Optional[str] = None) -> str:
    return model_manager.render_prompt(
        GENERATE_PROMPT_REF,
        {"product_description": product_description or UPLOADED_PRODUCT_DESCRIPTION},
    )


def build_change_prompt(model_manager: ModelManager, analysis: StoryAnalysis) -> str:
    changes = analysis.changed_blocks()
    if not changes:
        raise NoChangesError("No changes detected in the analysis")
    return model_manager.render_prompt(
        APPLY_CHANGES_PROMPT_REF,
        {"changes": [
            {
                "type": block.type or "Text",
                "original_content": block.original_content or "",
                "new_content": block.new_content,
            }
            for block in changes
        ]},
    )


def edit_text_block(analysis: StoryAnalysis, index: int, new_text: str) -> StoryAnalysis:
    """Record a replacement for one block, remembering what it first said."""
    if index < 0 or index >= len(analysis.text_blocks):
        raise IndexError(f"Text block {index} does not exist")

    blocks = list(analysis.text_blocks)
    block = blocks[index]
    blocks[index] = block.model_copy(update={
        "new_content": new_text,
        "original_content": block.original_content or block.content,
    })
    return analysis.model_copy(update={"text_blocks": blocks})
