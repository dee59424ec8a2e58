"""
Tests for per-user AI configuration: defaults, updates, fail-open reads and
repair of stale rows.
"""

import pytest

from web_analyzer import database
from web_analyzer.errors import NotFoundError, PersistenceError, ValidationError
from web_analyzer.models import UserAIConfig
from web_analyzer.processing.config_resolver import DEFAULT_CONFIG, plan_config_repair


class TestResolve:

    def test_first_access_creates_default_row(self, resolver):
        assert database.get_ai_config("alice") is None

        config = resolver.resolve("alice")

        assert config.model.key == "qwen-7b"
        assert config.prompt.id == "analysis-en"
        assert config.language == "en"
        assert config.max_content_length == 10000
        assert config.enable_caching is True
        stored = database.get_ai_config("alice")
        assert stored.model_id == "qwen-7b"
        assert stored.created_at is not None

    def test_second_access_reuses_row(self, resolver):
        resolver.resolve("alice")
        first = database.get_ai_config("alice")

        resolver.resolve("alice")

        assert database.get_ai_config("alice").id == first.id
        assert len(database.get_all_ai_configs()) == 1

    def test_stale_model_raises_but_get_config_falls_back(self, resolver, db):
        db.create_ai_config(UserAIConfig(user_id="old", model_id="gemma-7b", prompt_id="analysis-en"))

        with pytest.raises(NotFoundError):
            resolver.resolve("old")
        assert resolver.get_config("old") is DEFAULT_CONFIG

    def test_get_config_fails_open_on_database_error(self, resolver, monkeypatch):
        def broken(user_id):
            raise database.DatabaseError("database is locked")

        monkeypatch.setattr(database, "get_ai_config", broken)

        assert resolver.get_config("alice") is DEFAULT_CONFIG


class TestUpdate:

    def test_prompt_forces_language(self, resolver):
        config = resolver.update("alice", {"prompt_id": "analysis-pl"})

        assert config.prompt.id == "analysis-pl"
        assert config.language == "pl"
        assert database.get_ai_config("alice").language == "pl"

    def test_prompt_wins_over_explicit_language(self, resolver):
        config = resolver.update("alice", {"prompt_id": "analysis-en", "language": "pl"})

        assert config.prompt.id == "analysis-en"
        assert config.language == "en"

    def test_language_alone_selects_its_prompt(self, resolver):
        config = resolver.update("alice", {"language": "pl"})

        assert config.prompt.id == "analysis-pl"
        assert database.get_ai_config("alice").prompt_id == "analysis-pl"

    def test_language_without_templates_rejected(self, resolver):
        with pytest.raises(ValidationError) as exc_info:
            resolver.update("alice", {"language": "de"})
        assert "en" in str(exc_info.value)

    def test_unknown_model_leaves_store_unchanged(self, resolver):
        resolver.update("alice", {"model_id": "deepseek-chat"})

        with pytest.raises(NotFoundError) as exc_info:
            resolver.update("alice", {"model_id": "gpt-17", "max_content_length": 2000})

        message = str(exc_info.value)
        assert "deepseek-chat" in message and "qwen-7b" in message
        stored = database.get_ai_config("alice")
        assert stored.model_id == "deepseek-chat"
        assert stored.max_content_length == 10000

    def test_partial_updates_keep_other_fields(self, resolver):
        resolver.update("alice", {"model_id": "mistral-7b"})
        config = resolver.update("alice", {"max_content_length": 2500})

        assert config.model.key == "mistral-7b"
        assert config.max_content_length == 2500

    @pytest.mark.parametrize("updates", [
        {"max_content_length": 999},
        {"max_content_length": 50001},
        {"max_content_length": "5000"},
        {"max_content_length": True},
        {"cache_expiration": 299},
        {"cache_expiration": 86401},
        {"enable_caching": "yes"},
        {"theme": "dark"},
    ])
    def test_invalid_values_rejected(self, resolver, updates):
        with pytest.raises(ValidationError):
            resolver.update("alice", updates)
        assert database.get_ai_config("alice") is None

    def test_bounds_accepted(self, resolver):
        config = resolver.update("alice", {
            "max_content_length": 50000,
            "cache_expiration": 300,
            "enable_caching": False,
        })

        assert config.max_content_length == 50000
        assert config.cache_expiration == 300
        assert config.enable_caching is False

    def test_empty_update_creates_defaults(self, resolver):
        config = resolver.update("alice", {})

        assert config.model.key == "qwen-7b"
        assert database.get_ai_config("alice") is not None

    def test_store_failure_on_update(self, resolver, monkeypatch):
        def broken(defaults, updates):
            raise database.DatabaseError("database is locked")

        monkeypatch.setattr(database, "upsert_ai_config", broken)

        with pytest.raises(PersistenceError):
            resolver.update("alice", {"model_id": "mistral-7b"})

    def test_delete(self, resolver):
        resolver.resolve("alice")

        assert resolver.delete("alice") is True
        assert resolver.delete("alice") is False


class TestRepair:

    def test_plan_for_healthy_row_is_empty(self):
        stored = UserAIConfig(user_id="a", model_id="qwen-7b", prompt_id="analysis-pl", language="pl")
        assert plan_config_repair(stored) == {}

    def test_plan_remaps_retired_model_and_language(self):
        stored = UserAIConfig(user_id="a", model_id="phi-3-mini", prompt_id="analysis-pl", language="en")

        assert plan_config_repair(stored) == {"model_id": "qwen-7b", "language": "pl"}

    def test_plan_remaps_unknown_prompt(self):
        stored = UserAIConfig(user_id="a", model_id="qwen-7b", prompt_id="summary-fr", language="fr")

        assert plan_config_repair(stored) == {"prompt_id": "analysis-en", "language": "en"}

    def test_repair_writes_changes(self, resolver, db):
        stored = db.create_ai_config(
            UserAIConfig(user_id="old", model_id="llama-3-8b", prompt_id="analysis-en", max_content_length=3000)
        )

        changes = resolver.repair(stored)

        assert changes == {"model_id": "qwen-7b"}
        repaired = db.get_ai_config("old")
        assert repaired.model_id == "qwen-7b"
        assert repaired.max_content_length == 3000
        assert resolver.resolve("old").model.key == "qwen-7b"

    def test_dry_run_writes_nothing(self, resolver, db):
        stored = db.create_ai_config(UserAIConfig(user_id="old", model_id="gemma-2b", prompt_id="analysis-en"))

        assert resolver.repair(stored, dry_run=True) == {"model_id": "qwen-7b"}
        assert db.get_ai_config("old").model_id == "gemma-2b"
