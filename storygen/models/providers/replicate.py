from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Tuple
import json
import logging
import time
from os import getenv

import httpx
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential_jitter, retry_if_exception

from .base import (
    ModelProvider, ChatRequest, ModelResponse, Prediction,
    ModelError, ModelRetryable, ModelTimeout, MissingCredentials, PredictionFailed, PredictionTimeout,
)
from ...utils.image_converter import to_image_url

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.replicate.com/v1"
SECRET_FIELDS = {"openai_api_key"}

def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True
    return isinstance(exc, ModelRetryable)


def redact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: ("***" if k in SECRET_FIELDS else v) for k, v in payload.items()}


def output_to_text(output: Any) -> str:
    """
    Language models on Replicate stream tokens, so the finished output is
    usually a list of fragments. Some return a plain string or a chat-style dict.
    """
    if isinstance(output, list):
        return "".join(str(part) for part in output)
    if isinstance(output, str):
        return output
    if isinstance(output, dict):
        choices = output.get("choices")
        if choices and isinstance(choices[0], dict) and choices[0].get("message"):
            return choices[0]["message"].get("content") or ""
        if output.get("content"):
            return str(output["content"])
        return json.dumps(output)
    if output is None:
        return ""
    return str(output)


class ReplicateProvider(ModelProvider):
    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        poll_interval_s: float = 3.0,
        max_poll_attempts: int = 60,
        chat_image_field: str = "image_input",
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_token = api_token or getenv("REPLICATE_API_TOKEN")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval_s = poll_interval_s
        self.max_poll_attempts = max_poll_attempts
        self.chat_image_field = chat_image_field
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._sleep = sleep

    def _auth_headers(self) -> Dict[str, str]:
        if not self.api_token:
            raise MissingCredentials("Missing REPLICATE_API_TOKEN")
        return {"Authorization": f"Token {self.api_token}"}

    @retry(reraise=True, wait=wait_exponential_jitter(initial=0.5, max=4), stop=stop_after_attempt(3), retry=retry_if_exception(_is_retryable))
    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._auth_headers()
        try:
            return self.client.request(method, path, headers=headers, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            # request was never sent
            raise ModelRetryable(f"Replicate connection error: {e}") from e
        except httpx.TimeoutException as e:
            # a POST may already have been accepted; only GETs are repeated
            if method == "GET":
                raise ModelRetryable(f"Replicate request timed out: {e}") from e
            raise ModelTimeout(f"Replicate request timed out: {e}") from e
        except httpx.TransportError as e:
            if method == "GET":
                raise ModelRetryable(f"Replicate connection error: {e}") from e
            raise ModelError(f"Replicate connection error: {e}") from e

    @staticmethod
    def _check(response: httpx.Response, action: str) -> Dict[str, Any]:
        if response.is_error:
            logger.error("%s failed (%s): %s", action, response.status_code, response.text)
            raise ModelError(f"{action} failed: {response.text}")
        try:
            return response.json()
        except ValueError as e:
            raise ModelError(f"{action} returned invalid JSON: {e}") from e

    # -- files / models -----------------------------------------------------

    def upload_file(self, data: bytes, filename: str, content_type: str = "application/octet-stream") -> str:
        """Store bytes in Replicate's file storage and return a URL models can read."""
        response = self._request("POST", "/files", files={"content": (filename, data, content_type)})
        payload = self._check(response, "Upload")
        url = (payload.get("urls") or {}).get("get")
        if not url:
            raise ModelError("Upload response missing file URL")
        logger.info("Uploaded %s (%d bytes): %s", filename, len(data), url)
        return url

    def latest_version(self, model: str) -> str:
        response = self._request("GET", f"/models/{model}")
        payload = self._check(response, "Model lookup")
        try:
            version = payload["latest_version"]["id"]
        except (KeyError, TypeError) as e:
            raise ModelError(f"Model {model} has no published version") from e
        logger.info("Using %s version %s", model, version)
        return version

    def fetch(self, url: str) -> Tuple[bytes, str]:
        """Download a delivered output. Output URLs are public, so no auth header."""
        try:
            response = self.client.get(url)
        except httpx.HTTPError as e:
            raise ModelError(f"Failed to download {url}: {e}") from e
        if response.is_error:
            raise ModelError(f"Failed to download {url}: HTTP {response.status_code}")
        return response.content, response.headers.get("content-type", "application/octet-stream")

    # -- predictions ----------------------------------------------------------

    def create_prediction(self, input: Dict[str, Any], version: Optional[str] = None, model: Optional[str] = None) -> Prediction:
        if version:
            path, body = "/predictions", {"version": version, "input": input}
        elif model:
            path, body = f"/models/{model}/predictions", {"input": input}
        else:
            raise ValueError("create_prediction needs a version or a model")

        logger.debug("Submitting prediction to %s: %s", path, redact(input))
        response = self._request("POST", path, json=body)
        prediction = Prediction.from_json(self._check(response, "Prediction create"))
        logger.info("Prediction created: %s", prediction.id)
        return prediction

    def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        response = self._request("GET", f"/predictions/{prediction_id}")
        if response.is_error:
            logger.error("Poll failed: %s", response.text)
            return None
        try:
            return Prediction.from_json(response.json())
        except ValueError:
            logger.error("Poll returned invalid JSON: %s", response.text[:200])
            return None

    def wait(self, prediction: Prediction) -> Prediction:
        attempts = 0
        while not prediction.is_terminal and attempts < self.max_poll_attempts:
            self._sleep(self.poll_interval_s)
            attempts += 1
            polled = self.get_prediction(prediction.id)
            if polled is None:
                break
            prediction = polled
            logger.info("Poll attempt %d: %s", attempts, prediction.status)
        return prediction

    def run(self, input: Dict[str, Any], version: Optional[str] = None, model: Optional[str] = None) -> Prediction:
        prediction = self.wait(self.create_prediction(input, version=version, model=model))
        if prediction.succeeded:
            return prediction
        if prediction.is_terminal:
            raise PredictionFailed(f"Generation failed: {prediction.error or prediction.status}")
        raise PredictionTimeout("Generation timed out")

    # -- chat -------------------------------------------------------------------

    def _split_messages(self, messages: List[Dict[str, Any]]) -> Tuple[str, str]:
        system = "\n\n".join(m.get("content", "") for m in messages if m.get("role") == "system")
        user = "\n\n".join(m.get("content", "") for m in messages if m.get("role") == "user")
        return system, user

    def chat(self, req: ChatRequest) -> ModelResponse:
        params = dict(req.params or {})
        params.pop("timeout", None)
        image_field = params.pop("image_field", self.chat_image_field)

        system, user = self._split_messages(req.messages)
        model_input: Dict[str, Any] = {"prompt": user, **params}
        if system:
            model_input["system_prompt"] = system
        if req.images:
            model_input[image_field] = [to_image_url(img) for img in req.images]

        t0 = time.perf_counter()
        prediction = self.run(model_input, model=req.model)
        dt = time.perf_counter() - t0

        content = output_to_text(prediction.output)
        meta = {
            "provider": "replicate",
            "model": req.model,
            "latency": dt,
            "prediction_id": prediction.id,
        }
        if prediction.raw.get("metrics"):
            meta["metrics"] = prediction.raw["metrics"]

        parsed = None
        if req.schema is not None and content:
            try:
                parsed = req.schema.model_validate_json(content)
            except ValidationError as ve:
                meta["validation_error"] = str(ve)

        return ModelResponse(content=content, raw=prediction.raw, meta=meta, parsed=parsed)

    def health_check(self) -> bool:
        try:
            response = self._request("GET", "/account")
            return not response.is_error
        except (ModelError, httpx.HTTPError):
            return False

    def cleanup(self):
        self.client.close()
