from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any, List
import yaml
import jinja2
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptConfig:
    #immutable prompt config
    name: str
    version: str
    user_template: str
    system_template: Optional[str] = None #image prompts have no system turn
    description: Optional[str] = None

    @property
    def ref(self) -> str:
        return f"{self.name}@{self.version}"


class PromptManager:
    """Loads versioned Jinja2 templates laid out as <name>/<version>/{system,user}.j2."""

    def __init__(self, prompts_dir: Path):
        self.prompts_dir = Path(prompts_dir)
        if not self.prompts_dir.exists():
            raise FileNotFoundError(f"Prompts dir not found: {self.prompts_dir}")

        self.jinja_env = jinja2.Environment(
            undefined=jinja2.StrictUndefined, #strict checking, but 'is defined' test still works
            trim_blocks=True,
            lstrip_blocks=True,
            cache_size=100,
        )
        self._cache: Dict[str, PromptConfig] = {}

    def load_prompt(self, prompt_ref: str) -> PromptConfig:
        if prompt_ref in self._cache:
            return self._cache[prompt_ref]

        if '@' not in prompt_ref:
            raise ValueError(f"Invalid prompt reference: {prompt_ref}")

        path_parts, version = prompt_ref.rsplit('@', 1)
        prompt_path = self.prompts_dir / path_parts / version
        if not prompt_path.exists():
            raise FileNotFoundError(f"Prompt not found: {prompt_path}")

        config = self._load_config(prompt_path)
        system_path = prompt_path / "system.j2"

        prompt_config = PromptConfig(
            name=path_parts,
            version=version,
            user_template=self._load_template(prompt_path, "user.j2"),
            system_template=system_path.read_text() if system_path.exists() else None,
            description=config.get('description'),
        )

        self._cache[prompt_ref] = prompt_config
        logger.info(f"Loaded prompt: {prompt_ref}")
        return prompt_config

    def _render(self, prompt_ref: str, template: str, variables: Dict[str, Any]) -> str:
        try:
            return self.jinja_env.from_string(template).render(**variables)
        except jinja2.UndefinedError as e:
            raise ValueError(f"Missing required variable in prompt {prompt_ref}: {e}") from e

    def render(self, prompt_ref: str, variables: Dict[str, Any]) -> List[Dict[str, str]]:
        """Render a prompt into chat messages."""
        config = self.load_prompt(prompt_ref)
        messages = []
        if config.system_template is not None:
            messages.append({"role": "system", "content": self._render(prompt_ref, config.system_template, variables)})
        messages.append({"role": "user", "content": self._render(prompt_ref, config.user_template, variables)})
        logger.debug("Rendered %s into %d messages", config.ref, len(messages))
        return messages

    def render_text(self, prompt_ref: str, variables: Dict[str, Any]) -> str:
        """Render only the user template, for models that take a bare text prompt."""
        config = self.load_prompt(prompt_ref)
        return self._render(prompt_ref, config.user_template, variables).strip()

    def _load_config(self, prompt_path: Path) -> dict:
        config_path = prompt_path / "config.yaml"
        if not config_path.exists():
            return {}
        with open(config_path) as f:
            return yaml.safe_load(f) or {}

    def _load_template(self, prompt_path: Path, template_name: str) -> str:
        template_path = prompt_path / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template file not found: {template_path}")
        return template_path.read_text()

    def clear_cache(self):
        self._cache.clear()
        self.jinja_env.cache.clear()
        logger.info("Cleared prompt manager caches")
