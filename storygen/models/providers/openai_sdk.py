from __future__ import annotations
from typing import Dict, Any, Optional, List
import time
from os import getenv
from pydantic import ValidationError

from openai import OpenAI
from openai import APIError, APITimeoutError, APIConnectionError
from tenacity import retry, stop_after_attempt, wait_exponential_jitter, retry_if_exception

from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout, MissingCredentials
from ...utils.image_converter import to_image_url

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (APITimeoutError, APIConnectionError)):
        return True
    if isinstance(exc, APIError) and getattr(exc, 'status_code', None) in RETRYABLE_STATUS:
        return True
    return isinstance(exc, ModelRetryable)

class OpenAIProvider(ModelProvider):
    """Calls OpenAI directly instead of through the Replicate proxy model."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: float = 60.0, image_detail: str = "high", **kwargs):
        self.api_key = api_key or getenv("OPENAI_API_KEY")
        self.base_url = base_url
        self.timeout = timeout
        self.image_detail = image_detail
        self._client_kwargs = kwargs
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise MissingCredentials("Missing OPENAI_API_KEY")
            self._client = OpenAI(base_url=self.base_url, api_key=self.api_key, timeout=self.timeout, **self._client_kwargs)
        return self._client

    def _format_messages(self, messages: List[Dict[str, Any]], images: List[Any]) -> List[Dict[str, Any]]:
        """Attach images to the first user message as content parts."""
        if not images:
            return messages

        image_contents = []
        for img in images:
            try:
                image_contents.append({
                    "type": "image_url",
                    "image_url": {"url": to_image_url(img), "detail": self.image_detail},
                })
            except (OSError, ValueError) as e:
                raise ModelError(f"Failed to convert image for OpenAI: {e}") from e

        processed_messages = []
        images_added = False
        for msg in messages:
            if msg.get("role") == "user" and not images_added:
                processed_msg = msg.copy()
                processed_msg["content"] = [{"type": "text", "text": msg.get("content", "")}, *image_contents]
                processed_messages.append(processed_msg)
                images_added = True
            else:
                processed_messages.append(msg)
        return processed_messages

    @retry(reraise=True, wait=wait_exponential_jitter(initial=0.5, max=4), stop=stop_after_attempt(3), retry=retry_if_exception(_is_retryable))
    def chat(self, req: ChatRequest) -> ModelResponse:
        params = dict(req.params or {})
        # Replicate-only knobs shared through the task config
        params.pop("image_field", None)
        params.pop("openai_api_key", None)

        completion_params = {
            "model": req.model,
            "messages": self._format_messages(req.messages, req.images or []),
            **params,
        }
        if req.schema is not None:
            completion_params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response_schema", "schema": req.schema.model_json_schema()},
            }

        t0 = time.perf_counter()
        try:
            response = self.client.chat.completions.create(**completion_params)
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI timeout: {e}") from e
        except APIError as e:
            msg = f"OpenAI API error: {e}"
            if _is_retryable(e):
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e
        dt = time.perf_counter() - t0

        try:
            content = response.choices[0].message.content or ""
        except (IndexError, AttributeError) as e:
            raise ModelError(f"Invalid response structure from OpenAI API: {e}") from e

        meta = {
            "provider": "openai",
            "model": getattr(response, 'model', req.model),
            "latency": dt,
            "base_url": self.base_url or "https://api.openai.com/v1",
        }
        if getattr(response, 'usage', None):
            meta["usage"] = response.usage.model_dump()
        meta["finish_reason"] = getattr(response.choices[0], 'finish_reason', None)

        parsed = None
        if req.schema is not None and content:
            try:
                parsed = req.schema.model_validate_json(content)
            except ValidationError as ve:
                meta["validation_error"] = str(ve)

        return ModelResponse(content=content, raw=response, meta=meta, parsed=parsed)

    def health_check(self) -> bool:
        try:
            self.client.models.list()
            return True
        except (ModelError, APIError):
            return False
