"""Per-user AI configuration.

``ConfigResolver`` is built once at process start and handed to whoever needs
it; it owns no state besides the in-process default it falls back to.
"""

import logging
from typing import Optional

from .. import database
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import ResolvedConfig, UserAIConfig
from .ai_models import AI_MODELS, DEFAULT_MODEL, get_model
from .prompts import (
    DEFAULT_PROMPT,
    PROMPT_TEMPLATES,
    get_prompt,
    get_prompts_by_language,
    get_supported_languages,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"
DEFAULT_MAX_CONTENT_LENGTH = 10000
DEFAULT_ENABLE_CACHING = True
DEFAULT_CACHE_EXPIRATION = 3600  # 1 hour

MAX_CONTENT_LENGTH_RANGE = (1000, 50000)
CACHE_EXPIRATION_RANGE = (300, 86400)

DEFAULT_CONFIG = ResolvedConfig(
    model=get_model(DEFAULT_MODEL),
    prompt=get_prompt(DEFAULT_PROMPT),
    language=DEFAULT_LANGUAGE,
    max_content_length=DEFAULT_MAX_CONTENT_LENGTH,
    enable_caching=DEFAULT_ENABLE_CACHING,
    cache_expiration=DEFAULT_CACHE_EXPIRATION,
)


def default_user_config(user_id: str) -> UserAIConfig:
    """Return the configuration a user gets on first access."""
    return UserAIConfig(
        user_id=user_id,
        model_id=DEFAULT_MODEL,
        prompt_id=DEFAULT_PROMPT,
        language=DEFAULT_LANGUAGE,
        max_content_length=DEFAULT_MAX_CONTENT_LENGTH,
        enable_caching=DEFAULT_ENABLE_CACHING,
        cache_expiration=DEFAULT_CACHE_EXPIRATION,
    )


def _check_int_range(name: str, value, bounds: tuple) -> int:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value < low or value > high:
        raise ValidationError(f"{name} must be between {low} and {high}")
    return value


def plan_config_repair(stored: UserAIConfig) -> dict:
    """Column changes that bring a stored configuration back in line with the catalogs.

    Unknown (retired) models and prompts are replaced by the defaults, and
    the language is re-synced with the prompt. Returns {} when nothing is wrong.
    """
    changes = {}
    if stored.model_id not in AI_MODELS:
        changes["model_id"] = DEFAULT_MODEL

    prompt_id = stored.prompt_id
    if prompt_id not in PROMPT_TEMPLATES:
        prompt_id = DEFAULT_PROMPT
        changes["prompt_id"] = prompt_id

    language = PROMPT_TEMPLATES[prompt_id].language
    if stored.language != language:
        changes["language"] = language
    return changes


class ConfigResolver:
    """Resolve and update users' AI settings against the model and prompt catalogs."""

    def __init__(self, default_config: Optional[ResolvedConfig] = None):
        self.default_config = default_config or DEFAULT_CONFIG

    def resolve(self, user_id: str) -> ResolvedConfig:
        """Return the user's configuration, creating the default one on first access.

        Raises NotFoundError if the stored model or prompt no longer exists in
        the catalog, and database.DatabaseError if the store is unavailable.
        """
        stored = database.get_ai_config(user_id)
        if stored is None:
            stored = database.create_ai_config(default_user_config(user_id))
            logger.info("Created default AI config for user %s", user_id)
        return self._to_resolved(stored)

    def get_config(self, user_id: str) -> ResolvedConfig:
        """Like resolve(), but falls back to the in-process default on failure."""
        try:
            return self.resolve(user_id)
        except (database.DatabaseError, NotFoundError) as e:
            logger.warning("Failed to get AI config for user %s, using default: %s", user_id, e)
            return self.default_config

    def update(self, user_id: str, updates: dict) -> ResolvedConfig:
        """Validate and apply a partial configuration update.

        A ``prompt_id`` also sets ``language`` to the prompt's language, even if
        the same update names another language. A ``language`` on its own
        selects the first prompt written in that language. Nothing is written
        unless every field validates. Store failures raise PersistenceError.
        """
        changes = self._validate_updates(updates)
        try:
            stored = database.upsert_ai_config(default_user_config(user_id), changes)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to save AI configuration: {e}") from e
        logger.info("Updated AI config for user %s: %s", user_id, ", ".join(sorted(changes)) or "no changes")
        return self._to_resolved(stored)

    def delete(self, user_id: str) -> bool:
        """Remove a user's stored configuration (account removal)."""
        try:
            return database.delete_ai_config(user_id)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to delete AI configuration: {e}") from e

    def repair(self, stored: UserAIConfig, dry_run: bool = False) -> dict:
        """Apply plan_config_repair() to one stored configuration; returns the changes."""
        changes = plan_config_repair(stored)
        if changes and not dry_run:
            database.upsert_ai_config(default_user_config(stored.user_id), changes)
            logger.info("Repaired AI config for user %s: %s", stored.user_id, changes)
        return changes

    # -- helpers -------------------------------------------------------------

    def _to_resolved(self, stored: UserAIConfig) -> ResolvedConfig:
        model = get_model(stored.model_id)
        prompt = get_prompt(stored.prompt_id)
        return ResolvedConfig(
            model=model,
            prompt=prompt,
            language=prompt.language,
            max_content_length=stored.max_content_length,
            enable_caching=stored.enable_caching,
            cache_expiration=stored.cache_expiration,
        )

    def _validate_updates(self, updates: dict) -> dict:
        unknown = set(updates) - set(database.CONFIG_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        changes = {}

        if updates.get("model_id") is not None:
            changes["model_id"] = get_model(updates["model_id"]).key

        language = updates.get("language")
        if language is not None:
            prompts = get_prompts_by_language(language)
            if not prompts:
                raise ValidationError(
                    f"Language must be one of: {', '.join(get_supported_languages())}"
                )
            changes["prompt_id"] = prompts[0].id
            changes["language"] = language

        if updates.get("prompt_id") is not None:
            prompt = get_prompt(updates["prompt_id"])
            changes["prompt_id"] = prompt.id
            changes["language"] = prompt.language

        if updates.get("max_content_length") is not None:
            changes["max_content_length"] = _check_int_range(
                "max_content_length", updates["max_content_length"], MAX_CONTENT_LENGTH_RANGE
            )

        if updates.get("enable_caching") is not None:
            if not isinstance(updates["enable_caching"], bool):
                raise ValidationError("enable_caching must be a boolean")
            changes["enable_caching"] = updates["enable_caching"]

        if updates.get("cache_expiration") is not None:
            changes["cache_expiration"] = _check_int_range(
                "cache_expiration", updates["cache_expiration"], CACHE_EXPIRATION_RANGE
            )

        return changes
