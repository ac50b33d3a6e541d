from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Union, Type
from pydantic import BaseModel
from PIL import Image

#unified model errors
class ModelError(RuntimeError): ...
class ModelTimeout(ModelError): ...
class ModelRetryable(ModelError): ...
class MissingCredentials(ModelError): ...

class PredictionFailed(ModelError): ...
class PredictionTimeout(ModelTimeout): ...

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})

@dataclass(frozen=True)
class ChatRequest:
    model: str
    messages: List[Dict[str, Any]]
    params: Dict[str, Any] | None = None
    schema: Optional[Type[BaseModel]] = None #pydantic model -> json schema
    images: Optional[List[Union[str, bytes, Image.Image]]] = None #urls or local images

@dataclass(frozen=True)
class ModelResponse:
    content: str
    raw: Any #provider-native response obj/dict
    meta: Dict[str, Any] #timings, token counts, model, created_at, etc.
    parsed: Optional[BaseModel] = None #populated if schema was provided

@dataclass
class Prediction:
    """One asynchronous job on the prediction API, as last observed."""
    id: str
    status: str
    output: Any = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Prediction":
        return cls(
            id=data.get("id", ""),
            status=data.get("status", "starting"),
            output=data.get("output"),
            error=data.get("error"),
            raw=data,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

class ModelProvider(ABC):
    @abstractmethod
    def chat(self, req: ChatRequest) -> ModelResponse:
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> bool:
        raise NotImplementedError
