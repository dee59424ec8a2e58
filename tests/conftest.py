"""
Shared pytest fixtures for Web Analyzer tests.
"""

import os

# Tests always run against a throwaway SQLite file
os.environ.pop("DATABASE_URL", None)

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bs4 import BeautifulSoup

from web_analyzer import database
from web_analyzer.models import AnalysisResult, AudioResult, WebContent
from web_analyzer.processing.ai_models import get_model
from web_analyzer.processing.config_resolver import DEFAULT_CONFIG, ConfigResolver
from web_analyzer.processing.orchestrator import AnalysisOrchestrator


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database for each test."""
    monkeypatch.setattr(database, "DATABASE_PATH", tmp_path / "test.db")
    database.init_db()
    return database


@pytest.fixture
def resolver(db):
    return ConfigResolver()


# ============================================================================
# Configurations
# ============================================================================

@pytest.fixture
def default_config():
    """The in-process default ResolvedConfig (qwen-7b, analysis-en)."""
    return DEFAULT_CONFIG


@pytest.fixture
def anthropic_config():
    return replace(DEFAULT_CONFIG, model=get_model("claude-sonnet"))


# ============================================================================
# Pipeline fakes
# ============================================================================

class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now=None):
        self.now = now or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_web_content():
    return WebContent(
        title="10 Python Tips",
        content="Here are some tips for Python development. " * 5,
        url="https://example.com/article",
    )


@pytest.fixture
def sample_analysis():
    return AnalysisResult(
        summary="A short list of practical Python tips.",
        key_points=["Use list comprehensions", "Prefer pathlib", "Write tests"],
        sentiment="positive",
        word_count=35,
    )


@pytest.fixture
def stages(sample_web_content, sample_analysis):
    """Mock extract / analyze / synthesize stage callables."""
    extract = MagicMock(return_value=sample_web_content)
    analyze = MagicMock(return_value=sample_analysis)
    synthesize = MagicMock(
        return_value=AudioResult(audio_url="/audio/audio_abc.mp3", audio_id="audio_abc", duration=3)
    )
    return extract, analyze, synthesize


@pytest.fixture
def discard_audio():
    return MagicMock(return_value=True)


@pytest.fixture
def orchestrator(resolver, stages, discard_audio, clock):
    extract, analyze, synthesize = stages
    return AnalysisOrchestrator(
        resolver,
        extract=extract,
        analyze=analyze,
        synthesize=synthesize,
        discard_audio=discard_audio,
        clock=clock,
    )


# ============================================================================
# HTML samples
# ============================================================================

@pytest.fixture
def sample_article_html():
    """Page with a short <main> and a much longer <article> elsewhere."""
    main_text = "Main section text that is long enough to count as the real content. " * 2
    article_text = "Article text that is much longer than the main section. " * 40
    return f"""
    <!DOCTYPE html>
    <html>
    <head><title>10 Python Tips | Example Blog</title></head>
    <body>
        <header><h1>Example Blog</h1></header>
        <nav><a href="/">Home</a> <a href="/about">About</a></nav>
        <main>{main_text}</main>
        <article>{article_text}</article>
        <footer>Copyright 2025</footer>
        <script>var tracking = true;</script>
    </body>
    </html>
    """


@pytest.fixture
def empty_soup():
    return BeautifulSoup("", "html.parser")
