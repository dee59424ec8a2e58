"""Catalog of the AI models a user can choose from.

The catalog is closed and immutable: keys are what users store in their
configuration, ``AIModel.id`` is what gets sent to the provider.
"""

from types import MappingProxyType
from typing import Optional

from ..errors import NotFoundError
from ..models import AIModel

AI_MODELS = MappingProxyType({
    "qwen-7b": AIModel(
        key="qwen-7b",
        id="qwen/qwen-2.5-7b-instruct",
        name="Qwen 2.5 7B",
        provider="openrouter",
        vendor="Alibaba",
        max_tokens=8000,
        temperature=0.3,
        description="Small multilingual model with solid Polish support",
    ),
    "llama-3-70b": AIModel(
        key="llama-3-70b",
        id="meta-llama/llama-3-70b-instruct",
        name="Llama 3 70B",
        provider="openrouter",
        vendor="Meta",
        max_tokens=8000,
        temperature=0.3,
        description="Large multilingual model with good Polish support",
    ),
    "mistral-7b": AIModel(
        key="mistral-7b",
        id="mistralai/mistral-7b-instruct",
        name="Mistral 7B",
        provider="openrouter",
        vendor="Mistral AI",
        max_tokens=8000,
        temperature=0.3,
        description="Multilingual model with good Polish language capabilities",
    ),
    "deepseek-chat": AIModel(
        key="deepseek-chat",
        id="deepseek/deepseek-chat",
        name="DeepSeek Chat",
        provider="openrouter",
        vendor="DeepSeek",
        max_tokens=10000,
        temperature=0.3,
        description="Multilingual model with Polish language support",
    ),
    "claude-sonnet": AIModel(
        key="claude-sonnet",
        id="claude-sonnet-4-5-20250929",
        name="Claude Sonnet 4.5",
        provider="anthropic",
        vendor="Anthropic",
        max_tokens=1024,
        temperature=0.3,
        description="Anthropic model called directly through the Anthropic API",
    ),
})

DEFAULT_MODEL = "qwen-7b"


def get_model(model_key: Optional[str] = None) -> AIModel:
    """Look up a model by catalog key (the default model when *model_key* is None)."""
    key = model_key or DEFAULT_MODEL
    model = AI_MODELS.get(key)
    if model is None:
        raise NotFoundError(
            f"Model '{key}' not found. Available models: {', '.join(AI_MODELS)}"
        )
    return model


def get_available_models() -> list[AIModel]:
    return list(AI_MODELS.values())
