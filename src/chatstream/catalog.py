"""Concrete implementations for model catalogs."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .config import OPENROUTER_BASE_URL, PLACEHOLDER_API_KEY
from .models import ModelInfo, Pricing

logger = logging.getLogger(__name__)

DEFAULT_MODELS: List[ModelInfo] = [
    ModelInfo(
        id="openai/gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        description="For most everyday tasks",
        pricing=Pricing(prompt=0.0005, completion=0.0015),
    ),
    ModelInfo(
        id="openai/gpt-4",
        name="GPT-4",
        description="Advanced reasoning capabilities",
        pricing=Pricing(prompt=0.003, completion=0.006),
    ),
]


class Catalog(ABC):
    """Interface for listing the models a user can chat with."""

    @abstractmethod
    def list_models(self) -> List[ModelInfo]:
        """Returns the available models. Implementations must not raise."""
        pass


class Static(Catalog):
    """A fixed catalog, the built-in models by default."""

    def __init__(self, models: Optional[Sequence[ModelInfo]] = None):
        self._models = list(models) if models is not None else list(DEFAULT_MODELS)

    def list_models(self) -> List[ModelInfo]:
        return [model.model_copy() for model in self._models]


class OpenRouter(Catalog):
    """Lists chat models from OpenRouter, falling back to the built-in models.

    A missing key, an API failure or a response with no chat models all
    produce :data:`DEFAULT_MODELS`, so callers never see an error.
    """

    def __init__(self, api_key: Optional[str], base_url: str = OPENROUTER_BASE_URL):
        self.api_key = api_key
        self.base_url = base_url

    def list_models(self) -> List[ModelInfo]:
        if not self.api_key or self.api_key == PLACEHOLDER_API_KEY:
            logger.warning("OpenRouter API key not set or using placeholder. Using default models.")
            return list(DEFAULT_MODELS)

        try:
            from openai import OpenAI

            client = OpenAI(base_url=self.base_url, api_key=self.api_key)
            entries = [entry.model_dump() for entry in client.models.list()]
        except Exception as exc:
            logger.error("Error fetching models: %s", exc)
            return list(DEFAULT_MODELS)

        models = []
        for entry in entries:
            if entry.get("permission") != "chat" and "chat" not in entry.get("id", ""):
                continue
            model = _to_model_info(entry)
            if model is not None:
                models.append(model)

        if not models:
            logger.warning("No chat models in the OpenRouter catalog. Using default models.")
            return list(DEFAULT_MODELS)
        return models


def _to_model_info(entry: Dict[str, Any]) -> Optional[ModelInfo]:
    try:
        return ModelInfo(
            id=entry["id"],
            name=entry.get("name") or entry["id"],
            description=entry.get("description") or "",
            pricing=entry.get("pricing") or {},
        )
    except (KeyError, ValidationError) as exc:
        logger.debug("Skipping malformed catalog entry %r: %s", entry.get("id"), exc)
        return None
