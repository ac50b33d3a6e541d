import pytest
from pathlib import Path

from storygen.models.prompts import PromptManager, PromptConfig
from storygen.models.manager import DEFAULT_PROMPTS_DIR


@pytest.fixture
def temp_prompts_dir(tmp_path):
    """Create a temporary prompts directory with test data"""
    describe_v1 = tmp_path / "story" / "describe" / "v1"
    describe_v1.mkdir(parents=True)

    (describe_v1 / "config.yaml").write_text("description: Describe a story\n")
    (describe_v1 / "system.j2").write_text("You describe Instagram stories.")
    (describe_v1 / "user.j2").write_text("""Story: {{ title }}
{% if caption is defined %}
Caption: {{ caption }}
{% endif %}""")

    # image prompt without config or system turn
    edit_v1 = tmp_path / "story" / "edit" / "v1"
    edit_v1.mkdir(parents=True)
    (edit_v1 / "user.j2").write_text("  Replace {{ old }} with {{ new }}  \n")

    return tmp_path


@pytest.fixture
def prompt_manager(temp_prompts_dir):
    return PromptManager(temp_prompts_dir)


class TestPromptManager:

    def test_missing_prompts_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PromptManager(tmp_path / "missing")

    def test_load_prompt(self, prompt_manager):
        config = prompt_manager.load_prompt("story/describe@v1")

        assert isinstance(config, PromptConfig)
        assert config.name == "story/describe"
        assert config.version == "v1"
        assert config.ref == "story/describe@v1"
        assert config.description == "Describe a story"
        assert config.system_template == "You describe Instagram stories."

    def test_load_prompt_without_config_or_system(self, prompt_manager):
        config = prompt_manager.load_prompt("story/edit@v1")

        assert config.system_template is None
        assert config.description is None

    def test_load_prompt_is_cached(self, prompt_manager):
        first = prompt_manager.load_prompt("story/describe@v1")
        assert prompt_manager.load_prompt("story/describe@v1") is first

        prompt_manager.clear_cache()
        assert prompt_manager.load_prompt("story/describe@v1") is not first

    @pytest.mark.parametrize("ref, error", [
        ("story/describe", ValueError),
        ("story/describe@v9", FileNotFoundError),
        ("story/nothing@v1", FileNotFoundError),
    ])
    def test_bad_references(self, prompt_manager, ref, error):
        with pytest.raises(error):
            prompt_manager.load_prompt(ref)

    def test_render_messages(self, prompt_manager):
        messages = prompt_manager.render("story/describe@v1", {"title": "Summer sale", "caption": "50% off"})

        assert messages == [
            {"role": "system", "content": "You describe Instagram stories."},
            {"role": "user", "content": "Story: Summer sale\nCaption: 50% off\n"},
        ]

    def test_optional_variable_can_be_omitted(self, prompt_manager):
        messages = prompt_manager.render("story/describe@v1", {"title": "Summer sale"})
        assert messages[-1]["content"] == "Story: Summer sale\n"

    def test_missing_required_variable(self, prompt_manager):
        with pytest.raises(ValueError, match="Missing required variable"):
            prompt_manager.render("story/describe@v1", {})

    def test_render_text_without_system_turn(self, prompt_manager):
        assert prompt_manager.render_text("story/edit@v1", {"old": "A", "new": "B"}) == "Replace A with B"


class TestPackagedPrompts:

    @pytest.fixture
    def prompts(self):
        return PromptManager(DEFAULT_PROMPTS_DIR)

    def test_generate_prompt_uses_product_caption(self, prompts):
        text = prompts.render_text("story/generate@v1", {"product_description": "Basket Montante Blanc"})

        assert text.startswith("Create an Instagram Story from this image.")
        assert "Highlight Basket Montante Blanc (on the right)" in text
        assert text.endswith("so the image respect the 9:16 format")

    @pytest.mark.parametrize("variables", [{}, {"product_description": ""}, {"product_description": None}])
    def test_generate_prompt_defaults_to_the_product(self, prompts, variables):
        text = prompts.render_text("story/generate@v1", variables)
        assert "Highlight the product (on the right)" in text

    def test_apply_changes_prompt(self, prompts):
        text = prompts.render_text("story/apply_changes@v1", {"changes": [
            {"type": "Title", "original_content": "New Car!", "new_content": "New Bike!"},
            {"type": "Price", "original_content": "$26888", "new_content": "$999"},
        ]})

        assert text == (
            "Update this Instagram story image by replacing the text content as follows:\n"
            "\n"
            'Title: Replace "New Car!" with "New Bike!"\n'
            'Price: Replace "$26888" with "$999"\n'
            "\n"
            "Maintain the same visual style, layout, colors, and typography. "
            "Only change the text content as specified. "
            "Keep the same aspect ratio and overall design aesthetic."
        )

    def test_analyze_prompt_has_system_turn(self, prompts):
        messages = prompts.render("story/analyze_text@v1", {})

        assert messages[0]["role"] == "system"
        assert "structured JSON" in messages[0]["content"]
        assert '"textBlocks"' in messages[1]["content"]
        assert messages[1]["content"].rstrip().endswith("all the text blocks you can identify.")
