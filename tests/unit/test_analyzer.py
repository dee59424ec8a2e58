"""
Tests for the analysis provider client: prompt building, provider routing,
error mapping and reply parsing.
"""

from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import openai
import pytest

from web_analyzer.errors import (
    ConfigurationError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from web_analyzer.models import WebContent
from web_analyzer.processing import analyzer
from web_analyzer.processing.analyzer import (
    NO_KEY_POINTS,
    NO_SUMMARY,
    _parse_reply,
    analyze_content,
    build_messages,
    count_words,
    parse_analysis_response,
)

OPENROUTER_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
ANTHROPIC_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


@pytest.fixture(autouse=True)
def fresh_clients(monkeypatch):
    monkeypatch.setattr(analyzer, "_clients", {})


@pytest.fixture
def page():
    return WebContent(title="Tips", content="one two three four", url="https://example.com/")


def _openrouter_reply(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5),
    )


def _status_error(cls, status, request):
    return cls("upstream said no", response=httpx.Response(status, request=request), body=None)


# ============================================================================
# Prompt building
# ============================================================================

class TestBuildMessages:

    @pytest.mark.parametrize("limit", [1000, 50000])
    def test_content_truncated_to_exact_limit(self, default_config, limit):
        config = replace(default_config, max_content_length=limit)
        content = WebContent(title="T", content="§" * 60000, url="https://example.com/")

        _, user_prompt = build_messages(content, config)

        assert user_prompt.count("§") == limit

    def test_short_content_kept_whole(self, default_config, page):
        system_prompt, user_prompt = build_messages(page, default_config)

        assert system_prompt == default_config.prompt.system_prompt
        assert "Title: Tips" in user_prompt
        assert "URL: https://example.com/" in user_prompt
        assert "one two three four" in user_prompt


# ============================================================================
# Provider calls
# ============================================================================

class TestAnalyzeContent:

    def test_openrouter_request_and_structured_reply(self, default_config, page):
        client = MagicMock()
        client.chat.completions.create.return_value = _openrouter_reply(
            '{"summary": "Counting", "keyPoints": ["numbers"], "sentiment": "neutral", "wordCount": 4}'
        )
        analyzer._clients["openrouter"] = client

        result = analyze_content(page, default_config)

        assert result.summary == "Counting"
        assert result.key_points == ["numbers"]
        client.chat.completions.create.assert_called_once()
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "qwen/qwen-2.5-7b-instruct"
        assert kwargs["max_tokens"] == default_config.model.max_tokens
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]

    def test_anthropic_routing(self, anthropic_config, page):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Plain summary\nFirst point")],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
            stop_reason="end_turn",
        )
        analyzer._clients["anthropic"] = client

        result = analyze_content(page, anthropic_config)

        assert result.summary == "Plain summary"
        assert result.key_points == ["First point"]
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == anthropic_config.model.id
        assert kwargs["system"] == anthropic_config.prompt.system_prompt

    def test_empty_reply_is_provider_error(self, default_config, page):
        client = MagicMock()
        client.chat.completions.create.return_value = _openrouter_reply("   ")
        analyzer._clients["openrouter"] = client

        with pytest.raises(ProviderError) as exc_info:
            analyze_content(page, default_config)
        assert exc_info.value.kind == "other"

    @pytest.mark.parametrize("sdk_error, status, expected", [
        (openai.AuthenticationError, 401, ProviderAuthError),
        (openai.RateLimitError, 429, ProviderRateLimitError),
        (openai.NotFoundError, 404, ModelNotFoundError),
        (openai.InternalServerError, 500, ProviderError),
    ])
    def test_openrouter_error_mapping(self, default_config, page, sdk_error, status, expected):
        client = MagicMock()
        client.chat.completions.create.side_effect = _status_error(sdk_error, status, OPENROUTER_REQUEST)
        analyzer._clients["openrouter"] = client

        with pytest.raises(expected):
            analyze_content(page, default_config)

    def test_model_not_found_carries_model_id(self, default_config, page):
        client = MagicMock()
        client.chat.completions.create.side_effect = _status_error(
            openai.NotFoundError, 404, OPENROUTER_REQUEST
        )
        analyzer._clients["openrouter"] = client

        with pytest.raises(ModelNotFoundError) as exc_info:
            analyze_content(page, default_config)
        assert exc_info.value.model_id == "qwen/qwen-2.5-7b-instruct"
        assert exc_info.value.code == "model_not_found"

    def test_connection_error_is_provider_error(self, default_config, page):
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.APIConnectionError(request=OPENROUTER_REQUEST)
        analyzer._clients["openrouter"] = client

        with pytest.raises(ProviderError):
            analyze_content(page, default_config)

    def test_anthropic_auth_error(self, anthropic_config, page):
        client = MagicMock()
        client.messages.create.side_effect = _status_error(
            anthropic.AuthenticationError, 401, ANTHROPIC_REQUEST
        )
        analyzer._clients["anthropic"] = client

        with pytest.raises(ProviderAuthError):
            analyze_content(page, anthropic_config)

    def test_missing_api_key(self, monkeypatch, default_config, page):
        monkeypatch.setattr(analyzer, "OPENROUTER_API_KEY", None)

        with pytest.raises(ConfigurationError):
            analyze_content(page, default_config)


# ============================================================================
# Reply parsing
# ============================================================================

class TestStructuredParsing:

    def test_json_embedded_in_prose(self):
        reply = (
            "Sure, here is the analysis:\n"
            '{"summary": "Great tips", "keyPoints": ["a", "b"], '
            '"sentiment": "positive", "wordCount": 42}\n'
            "Let me know if you need more."
        )
        parsed = _parse_reply(reply, "irrelevant")

        assert parsed.path == "structured"
        assert parsed.result.summary == "Great tips"
        assert parsed.result.key_points == ["a", "b"]
        assert parsed.result.sentiment == "positive"
        assert parsed.result.word_count == 42

    def test_per_field_defaults(self):
        reply = '{"summary": "", "keyPoints": "not a list", "sentiment": "angry", "wordCount": -3}'
        result = parse_analysis_response(reply, "one two three")

        assert result.summary == NO_SUMMARY
        assert result.key_points == [NO_KEY_POINTS]
        assert result.sentiment == "neutral"
        assert result.word_count == 3

    def test_missing_fields_use_defaults(self):
        result = parse_analysis_response('{"summary": "Only a summary"}', "a b")

        assert result.summary == "Only a summary"
        assert result.key_points == [NO_KEY_POINTS]
        assert result.sentiment == "neutral"
        assert result.word_count == 2

    def test_boolean_word_count_rejected(self):
        result = parse_analysis_response('{"summary": "S", "wordCount": true}', "a b c d")
        assert result.word_count == 4

    def test_float_word_count_accepted(self):
        result = parse_analysis_response('{"summary": "S", "wordCount": 12.0}', "a")
        assert result.word_count == 12

    def test_key_points_with_non_strings_rejected(self):
        result = parse_analysis_response('{"summary": "S", "keyPoints": ["ok", 3]}', "a")
        assert result.key_points == [NO_KEY_POINTS]


class TestHeuristicParsing:

    def test_lines_become_summary_and_key_points(self):
        reply = "First line summary\n\n   Point A  \nPoint B\nPoint C\nPoint D"
        parsed = _parse_reply(reply, "five words in original content")

        assert parsed.path == "heuristic"
        assert parsed.result.summary == "First line summary"
        assert parsed.result.key_points == ["Point A", "Point B", "Point C"]
        assert parsed.result.sentiment == "neutral"
        assert parsed.result.word_count == 5

    def test_invalid_json_falls_back(self):
        parsed = _parse_reply("{not valid json}", "a b")

        assert parsed.path == "heuristic"
        assert parsed.result.summary == "{not valid json}"
        assert parsed.result.key_points == []

    def test_single_line_reply(self):
        result = parse_analysis_response("Just one sentence.", "a b c")
        assert result.summary == "Just one sentence."
        assert result.key_points == []

    def test_blank_reply(self):
        result = parse_analysis_response(" \n\t\n ", "a b")
        assert result.summary == NO_SUMMARY
        assert result.key_points == []
        assert result.word_count == 2


def test_count_words():
    assert count_words("  one\ttwo\nthree  ") == 3
    assert count_words("") == 0
