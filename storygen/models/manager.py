from __future__ import annotations
from typing import Optional, Dict, Any, List, Tuple, Type, Union
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum
from os import getenv
import yaml
import time
import logging
from contextlib import contextmanager

from pydantic import BaseModel

from .prompts import PromptManager
from .providers.base import ChatRequest, ModelResponse, ModelError, MissingCredentials, Prediction
from .providers.openai_sdk import OpenAIProvider
from .providers.replicate import ReplicateProvider

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parents[1]
DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config" / "config.yaml"
DEFAULT_PROMPTS_DIR = PACKAGE_ROOT / "prompts"


class Provider(Enum):
    REPLICATE = "replicate"
    OPENAI = "openai"


@dataclass(frozen=True)
class TaskConfig:
    provider: str
    model: str
    params: Dict[str, Any] = field(default_factory=dict)
    prompt_ref: Optional[str] = None #e.g. "story/generate@v1"
    version: Optional[str] = None #pinned model version
    resolve_latest_version: bool = False
    image_field: Optional[str] = None #name of the model input holding the image
    image_list: bool = False #whether that input takes a list of urls
    openai_key_field: Optional[str] = None #proxied OpenAI models need the caller's key
    timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["params"] = dict(data.get("params") or {})
        return cls(**known)


class ModelManager:
    def __init__(self, config_path: Union[Path, str, None] = None, prompts_dir: Optional[Path] = None):
        self.config_path = Path(config_path or getenv("STORYGEN_CONFIG") or DEFAULT_CONFIG_PATH)
        self.config = self._load_config()
        self.tasks = {name: TaskConfig.from_dict(cfg) for name, cfg in self.config["tasks"].items()}
        self._providers = {}
        self._stats = {} #performance tracking
        self.prompts = PromptManager(prompts_dir or DEFAULT_PROMPTS_DIR)

    def _load_config(self) -> Dict:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        if 'providers' not in config:
            raise ValueError("Config missing 'providers'")
        if 'tasks' not in config:
            raise ValueError("Config missing 'tasks'")

        for task_name, task_cfg in config['tasks'].items():
            if 'provider' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing provider")
            if 'model' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing model")
            if task_cfg['provider'] not in config['providers']:
                raise ValueError(f"Task '{task_name}' references unknown provider '{task_cfg['provider']}'")

        for provider_name, provider_cfg in config['providers'].items():
            provider_type = (provider_cfg or {}).get('type')
            if provider_type not in {p.value for p in Provider}:
                raise ValueError(f"Provider '{provider_name}' has unknown type '{provider_type}'")

        return config

    def _get_provider(self, provider_name: str):
        if provider_name in self._providers:
            return self._providers[provider_name]
        if provider_name not in self.config['providers']:
            raise ValueError(f"Unknown provider: {provider_name}")

        provider_cfg = self.config["providers"][provider_name]
        provider_type = Provider(provider_cfg["type"])
        settings = provider_cfg.get("settings") or {}

        if provider_type is Provider.REPLICATE:
            provider = ReplicateProvider(**settings)
        else:
            provider = OpenAIProvider(**settings)
        self._providers[provider_name] = provider
        logger.info(f"initialized provider: {provider_name}")
        return provider

    def _provider_type(self, provider_name: str) -> Provider:
        return Provider(self.config["providers"][provider_name]["type"])

    def _task(self, task: str) -> TaskConfig:
        if task not in self.tasks:
            raise ValueError(f"Unknown task: {task}")
        return self.tasks[task]

    def _prediction_provider(self, task: str) -> Tuple[TaskConfig, ReplicateProvider]:
        task_cfg = self._task(task)
        if self._provider_type(task_cfg.provider) is not Provider.REPLICATE:
            raise ValueError(f"Task '{task}' does not run on a prediction provider")
        return task_cfg, self._get_provider(task_cfg.provider)

    @staticmethod
    def _openai_key() -> str:
        key = getenv("OPENAI_API_KEY")
        if not key:
            raise MissingCredentials("Missing OPENAI_API_KEY")
        return key

    def _replicate_extras(self, task_cfg: TaskConfig) -> Dict[str, Any]:
        extras = {}
        if task_cfg.openai_key_field:
            extras[task_cfg.openai_key_field] = self._openai_key()
        return extras

    def render_prompt(self, prompt_ref: str, variables: Dict[str, Any]) -> str:
        return self.prompts.render_text(prompt_ref, variables)

    def call(self, task: str, prompt_ref: Optional[str] = None, variables: Optional[Dict[str, Any]] = None, schema: Optional[Type[BaseModel]] = None, images: Optional[List[Any]] = None, **params_override) -> ModelResponse:
        """Run a chat-style task (text in, text out, optional images)."""
        start_time = time.perf_counter()
        task_cfg = self._task(task)

        prompt_ref = prompt_ref or task_cfg.prompt_ref
        if not prompt_ref:
            raise ValueError(f"Task '{task}' has no prompt_ref")
        rendered = self.prompts.render(prompt_ref, variables or {})

        params = {**task_cfg.params, **params_override}
        if task_cfg.timeout:
            params.setdefault("timeout", task_cfg.timeout)
        if self._provider_type(task_cfg.provider) is Provider.REPLICATE:
            if task_cfg.image_field:
                params.setdefault("image_field", task_cfg.image_field)
            params.update(self._replicate_extras(task_cfg))

        request = ChatRequest(
            model=task_cfg.model,
            messages=rendered,
            images=images,
            params=params,
            schema=schema,
        )

        provider = self._get_provider(task_cfg.provider)
        try:
            response = provider.chat(request)
        except ModelError:
            self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=False)
            raise
        self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=True)
        return response

    def predict(self, task: str, prompt: str, image_url: Optional[str] = None, **params_override) -> Prediction:
        """Run an image task: submit a prediction and poll it to completion."""
        start_time = time.perf_counter()
        task_cfg, provider = self._prediction_provider(task)

        model_input: Dict[str, Any] = {**task_cfg.params, **params_override, "prompt": prompt}
        if image_url:
            if not task_cfg.image_field:
                raise ValueError(f"Task '{task}' does not accept an input image")
            model_input[task_cfg.image_field] = [image_url] if task_cfg.image_list else image_url
        model_input.update(self._replicate_extras(task_cfg))

        try:
            version = task_cfg.version
            if not version and task_cfg.resolve_latest_version:
                version = provider.latest_version(task_cfg.model)
            prediction = provider.run(model_input, version=version, model=None if version else task_cfg.model)
        except ModelError:
            self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=False)
            raise
        self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=True)
        return prediction

    def upload(self, data: bytes, filename: str, content_type: str, task: str = "story_generation") -> str:
        """Upload to the file storage of the provider that runs `task`."""
        _, provider = self._prediction_provider(task)
        return provider.upload_file(data, filename, content_type)

    def fetch(self, url: str, task: str = "story_generation") -> Tuple[bytes, str]:
        _, provider = self._prediction_provider(task)
        return provider.fetch(url)

    def task_providers(self) -> List[str]:
        """Providers referenced by at least one task, in config order."""
        used = {task_cfg.provider for task_cfg in self.tasks.values()}
        return [name for name in self.config["providers"] if name in used]

    def provider_status(self, used_only: bool = False) -> Dict[str, str]:
        """Credential presence per provider; never contacts the network."""
        names = self.task_providers() if used_only else list(self.config["providers"])
        status = {}
        for name in names:
            provider = self._get_provider(name)
            has_key = bool(getattr(provider, "api_token", None) or getattr(provider, "api_key", None))
            status[name] = "configured" if has_key else "missing credentials"
        return status

    def _track_stats(self, task: str, latency_ms: float, success: bool):
        if task not in self._stats:
            self._stats[task] = {
                'total_calls': 0,
                'successful_calls': 0,
                'total_latency_ms': 0
            }

        stats = self._stats[task]
        stats['total_calls'] += 1
        if success:
            stats['successful_calls'] += 1
            stats['total_latency_ms'] += latency_ms

    def get_stats(self, task: Optional[str] = None) -> Dict:
        if task:
            return self._stats.get(task, {})
        return self._stats

    def cleanup(self):
        for name, provider in self._providers.items():
            if hasattr(provider, 'cleanup'):
                try:
                    provider.cleanup()
                    logger.info(f"Cleaned up provider: {name}")
                except Exception as e:
                    logger.error(f"Cleanup failed for {name}: {e}")

        self._providers.clear()

    @contextmanager
    def session(self):
        try:
            yield self
        finally:
            self.cleanup()
