"""Public operations of the analyzer, returned as ``{success, data}`` envelopes.

Failures that belong to the pipeline's own error hierarchy become
``{"success": False, "error": ..., "code": ...}``; mapping codes to HTTP
statuses is left to the web layer. Store failures arrive here already wrapped
as PersistenceError. Anything else is a bug and propagates.
"""

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict

from .delivery.narrator import list_voices
from .errors import WebAnalyzerError
from .models import AIModel, AnalysisRecord, PromptTemplate, ResolvedConfig
from .processing.ai_models import get_available_models
from .processing.config_resolver import ConfigResolver
from .processing.orchestrator import DEFAULT_HISTORY_LIMIT, AnalysisOrchestrator
from .processing.prompts import get_available_prompts

logger = logging.getLogger(__name__)


def ok(data: Any, **extra) -> Dict[str, Any]:
    return {"success": True, "data": data, **extra}


def fail(error: WebAnalyzerError) -> Dict[str, Any]:
    return {"success": False, "error": str(error), "code": error.code}


def record_to_dict(record: AnalysisRecord) -> dict:
    return {
        "id": record.id,
        "url": record.url,
        "user_id": record.user_id,
        "analysis": asdict(record.analysis),
        "audio": asdict(record.audio),
        "timestamp": record.timestamp.isoformat() if record.timestamp else None,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }


def model_to_dict(model: AIModel) -> dict:
    return asdict(model)


def prompt_to_dict(prompt: PromptTemplate) -> dict:
    return asdict(prompt)


def config_to_dict(config: ResolvedConfig) -> dict:
    return {
        "model": model_to_dict(config.model),
        "prompt": prompt_to_dict(config.prompt),
        "language": config.language,
        "max_content_length": config.max_content_length,
        "enable_caching": config.enable_caching,
        "cache_expiration": config.cache_expiration,
    }


class WebAnalyzerService:
    """Facade over the resolver and orchestrator, built once per process."""

    def __init__(
        self,
        resolver: ConfigResolver,
        orchestrator: AnalysisOrchestrator,
        voices: Callable[[], list] = list_voices,
    ):
        self.resolver = resolver
        self.orchestrator = orchestrator
        self.voices = voices

    def analyze(self, url: str, user_id: str) -> dict:
        try:
            outcome = self.orchestrator.analyze(url, user_id)
        except WebAnalyzerError as e:
            return fail(e)
        return ok(record_to_dict(outcome.record), cached=outcome.cached)

    def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> dict:
        try:
            records = self.orchestrator.get_history(user_id, limit)
        except WebAnalyzerError as e:
            return fail(e)
        return ok([record_to_dict(r) for r in records])

    def get_by_id(self, record_id: int, user_id: str) -> dict:
        try:
            record = self.orchestrator.get_by_id(record_id, user_id)
        except WebAnalyzerError as e:
            return fail(e)
        return ok(record_to_dict(record))

    def delete_by_id(self, record_id: int, user_id: str) -> dict:
        try:
            self.orchestrator.delete_by_id(record_id, user_id)
        except WebAnalyzerError as e:
            return fail(e)
        return ok(None, message="Analysis deleted successfully")

    def get_config(self, user_id: str) -> dict:
        return ok(config_to_dict(self.resolver.get_config(user_id)))

    def update_config(self, user_id: str, updates: dict) -> dict:
        try:
            config = self.resolver.update(user_id, updates)
        except WebAnalyzerError as e:
            logger.warning("Rejected AI config update for user %s: %s", user_id, e)
            return fail(e)
        return ok(config_to_dict(config), message="AI configuration updated successfully")

    def list_models(self) -> dict:
        return ok([model_to_dict(m) for m in get_available_models()])

    def list_prompts(self) -> dict:
        return ok([prompt_to_dict(p) for p in get_available_prompts()])

    def list_voices(self) -> dict:
        return ok(self.voices())
