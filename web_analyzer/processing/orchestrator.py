"""Cache check -> extraction -> analysis -> narration -> persistence.

Every request runs through these stages in order:

    cache_check -> extracting -> analyzing -> narrating -> persisting -> done

A fresh cached record short-circuits straight to ``done``. A failure in any
stage aborts the run and re-raises; nothing is saved for a failed run, and a
successful run always adds a new record rather than updating an old one.

No lock is taken per (url, user): two concurrent misses for the same page may
both do the work and both save a record.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .. import database
from ..delivery.narrator import delete_audio, synthesize_speech
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..ingestion.extractor import extract_web_content, validate_url
from ..models import (
    AnalysisOutcome,
    AnalysisRecord,
    AnalysisResult,
    AudioResult,
    ResolvedConfig,
    WebContent,
)
from .analyzer import analyze_content
from .config_resolver import ConfigResolver

logger = logging.getLogger(__name__)

# Fixed read-side freshness window; independent of a user's cache_expiration
CACHE_MAX_AGE = timedelta(hours=24)

MAX_HISTORY_LIMIT = 100
DEFAULT_HISTORY_LIMIT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisOrchestrator:
    """Run the analysis pipeline for one (url, user) at a time.

    The stage callables default to the real extractor, provider client and
    narrator; tests swap them for fakes.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        extract: Callable[[str], WebContent] = extract_web_content,
        analyze: Callable[[WebContent, ResolvedConfig], AnalysisResult] = analyze_content,
        synthesize: Callable[[str], AudioResult] = synthesize_speech,
        discard_audio: Callable[[str], bool] = delete_audio,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.extract = extract
        self.analyze_stage = analyze
        self.synthesize = synthesize
        self.discard_audio = discard_audio
        self.clock = clock

    def analyze(self, url: str, user_id: str) -> AnalysisOutcome:
        """Return a fresh cached analysis of *url* for *user_id*, or compute one.

        Store failures surface as PersistenceError. When saving the record
        fails, the narration file written for it is removed.
        """
        url = validate_url(url)
        config = self.resolver.get_config(user_id)

        state = "cache_check"
        audio = None
        try:
            if config.enable_caching:
                cached = self.get_cached(url, user_id)
                if cached is not None:
                    logger.info("Cache hit for %s (user %s, record %s)", url, user_id, cached.id)
                    return AnalysisOutcome(record=cached, cached=True)
                logger.info("Cache miss for %s (user %s)", url, user_id)

            state = "extracting"
            web_content = self.extract(url)

            state = "analyzing"
            analysis = self.analyze_stage(web_content, config)

            state = "narrating"
            audio = self.synthesize(analysis.summary)

            state = "persisting"
            now = self.clock()
            record = AnalysisRecord(
                url=url,
                user_id=user_id,
                analysis=analysis,
                audio=audio,
                timestamp=now,
                created_at=now,
                updated_at=now,
            )
            try:
                record.id = database.save_analysis(record)
            except database.DatabaseError as e:
                raise PersistenceError(f"Failed to save analysis: {e}") from e
        except Exception as e:
            logger.error("Analysis of %s failed during %s: %s", url, state, e)
            if state == "persisting" and audio is not None:
                self.discard_audio(audio.audio_id)
            raise

        logger.info("Saved analysis %d for %s (user %s)", record.id, url, user_id)
        return AnalysisOutcome(record=record, cached=False)

    def get_cached(self, url: str, user_id: str) -> Optional[AnalysisRecord]:
        """Most recent record for (url, user) if younger than CACHE_MAX_AGE."""
        try:
            latest = database.get_latest_analysis(url, user_id)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to read cached analysis: {e}") from e
        if latest is None or latest.created_at is None:
            return None
        if self.clock() - latest.created_at < CACHE_MAX_AGE:
            return latest
        return None

    def get_history(self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[AnalysisRecord]:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("Limit must be a positive integer")
        if limit > MAX_HISTORY_LIMIT:
            raise ValidationError(f"Limit cannot be greater than {MAX_HISTORY_LIMIT}")
        try:
            return database.get_analyses_for_user(user_id, limit)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to load analysis history: {e}") from e

    def get_by_id(self, record_id: int, user_id: str) -> AnalysisRecord:
        try:
            record = database.get_analysis_by_id(record_id, user_id)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to load analysis: {e}") from e
        if record is None:
            raise NotFoundError("Analysis not found")
        return record

    def delete_by_id(self, record_id: int, user_id: str) -> None:
        """Delete a record; another user's record is reported as not found."""
        try:
            deleted = database.delete_analysis(record_id, user_id)
        except database.DatabaseError as e:
            raise PersistenceError(f"Failed to delete analysis: {e}") from e
        if not deleted:
            raise NotFoundError("Analysis not found")
        logger.info("Deleted analysis %s for user %s", record_id, user_id)
