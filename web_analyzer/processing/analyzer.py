import json
import logging
import math
import re
from typing import Dict, NamedTuple, Tuple

import anthropic
import openai

from ..config import (
    ANTHROPIC_API_KEY,
    APP_TITLE,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    OPENROUTER_REFERER,
)
from ..errors import (
    ConfigurationError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from ..models import SENTIMENTS, AnalysisResult, ResolvedConfig, WebContent
from .prompts import format_prompt

logger = logging.getLogger(__name__)

NO_SUMMARY = "No summary available"
NO_KEY_POINTS = "No key points available"

# First "{" through last "}" of the reply
_JSON_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)

# One client per provider, built on first use and reused afterwards
_clients: Dict[str, object] = {}


class ParsedReply(NamedTuple):
    path: str  # "structured" or "heuristic"
    result: AnalysisResult


def count_words(text: str) -> int:
    """Number of whitespace-delimited tokens in *text*."""
    return len(text.split())


# ---------------------------------------------------------------------------
# Provider clients
# ---------------------------------------------------------------------------

def _get_client(provider: str):
    client = _clients.get(provider)
    if client is not None:
        return client

    if provider == "openrouter":
        if not OPENROUTER_API_KEY:
            raise ConfigurationError("OPENROUTER_API_KEY is not defined in environment variables")
        client = openai.OpenAI(
            api_key=OPENROUTER_API_KEY,
            base_url=OPENROUTER_BASE_URL,
            max_retries=0,
            default_headers={"HTTP-Referer": OPENROUTER_REFERER, "X-Title": APP_TITLE},
        )
    elif provider == "anthropic":
        if not ANTHROPIC_API_KEY:
            raise ConfigurationError("ANTHROPIC_API_KEY is not defined in environment variables")
        client = anthropic.Anthropic(api_key=ANTHROPIC_API_KEY, max_retries=0)
    else:
        raise ConfigurationError(f"Unsupported AI provider: {provider}")

    _clients[provider] = client
    return client


def _complete_openrouter(client, config: ResolvedConfig, system: str, user: str) -> str:
    try:
        response = client.chat.completions.create(
            model=config.model.id,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_tokens=config.model.max_tokens,
            temperature=config.model.temperature,
        )
    except openai.AuthenticationError as e:
        raise ProviderAuthError("Invalid OpenRouter API key") from e
    except openai.RateLimitError as e:
        raise ProviderRateLimitError("OpenRouter API rate limit exceeded") from e
    except openai.NotFoundError as e:
        raise ModelNotFoundError(config.model.id) from e
    except openai.APIError as e:
        raise ProviderError(f"OpenRouter API error: {e}") from e

    if response.usage is not None:
        logger.info(
            "OpenRouter API usage: input: %d tokens, output: %d tokens",
            response.usage.prompt_tokens,
            response.usage.completion_tokens,
        )

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def _complete_anthropic(client, config: ResolvedConfig, system: str, user: str) -> str:
    try:
        response = client.messages.create(
            model=config.model.id,
            system=system,
            max_tokens=config.model.max_tokens,
            temperature=config.model.temperature,
            messages=[{"role": "user", "content": user}],
        )
    except anthropic.AuthenticationError as e:
        raise ProviderAuthError("Invalid Anthropic API key") from e
    except anthropic.RateLimitError as e:
        raise ProviderRateLimitError("Anthropic API rate limit exceeded") from e
    except anthropic.NotFoundError as e:
        raise ModelNotFoundError(config.model.id) from e
    except anthropic.APIError as e:
        raise ProviderError(f"Anthropic API error: {e}") from e

    logger.info(
        "Claude API usage: input: %d tokens, output: %d tokens",
        response.usage.input_tokens,
        response.usage.output_tokens,
    )

    if not response.content:
        logger.error("Claude returned empty content array (stop_reason=%s)", response.stop_reason)
        return ""
    return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


_COMPLETERS = {
    "openrouter": _complete_openrouter,
    "anthropic": _complete_anthropic,
}


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def build_messages(content: WebContent, config: ResolvedConfig) -> Tuple[str, str]:
    """Return the (system, user) prompt pair for *content*.

    The page text is cut to the user's max_content_length before it goes into
    the template.
    """
    user_prompt = format_prompt(config.prompt, {
        "title": content.title,
        "url": content.url,
        "content": content.content[:config.max_content_length],
    })
    return config.prompt.system_prompt, user_prompt


def analyze_content(content: WebContent, config: ResolvedConfig) -> AnalysisResult:
    """Analyze extracted page content with the user's model and prompt.

    Makes exactly one request to the provider. Raises ProviderError (or a
    subclass) on upstream failure and ConfigurationError when the provider's
    API key is missing. A reply that ignores the requested JSON format is not
    an error; see parse_analysis_response().
    """
    provider = config.model.provider
    completer = _COMPLETERS.get(provider)
    if completer is None:
        raise ConfigurationError(f"Unsupported AI provider: {provider}")

    client = _get_client(provider)
    system_prompt, user_prompt = build_messages(content, config)

    logger.info(
        "Analyzing %s with %s (prompt=%s, %d chars)",
        content.url, config.model.id, config.prompt.id, len(user_prompt),
    )
    logger.debug("System prompt:\n%s", system_prompt)
    logger.debug("User prompt:\n%s", user_prompt)

    reply = completer(client, config, system_prompt, user_prompt)
    if not reply or not reply.strip():
        raise ProviderError(f"No response received from {provider}")

    logger.debug("Raw model reply:\n%s", reply)
    return parse_analysis_response(reply, content.content)


def parse_analysis_response(reply: str, original_content: str) -> AnalysisResult:
    """Reduce a free-form model reply to an AnalysisResult.

    Never fails: a reply without usable JSON goes through line-based parsing.
    """
    parsed = _parse_reply(reply, original_content)
    logger.info("Parsed model reply via %s path", parsed.path)
    return parsed.result


def _parse_reply(reply: str, original_content: str) -> ParsedReply:
    match = _JSON_SPAN_RE.search(reply)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning("Model reply contained invalid JSON, using line fallback: %s", e)
        else:
            if isinstance(data, dict):
                return ParsedReply("structured", _from_json(data, original_content))
            logger.warning("Model reply JSON is not an object, using line fallback")

    return ParsedReply("heuristic", _from_lines(reply, original_content))


def _from_json(data: dict, original_content: str) -> AnalysisResult:
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary:
        summary = NO_SUMMARY

    key_points = data.get("keyPoints")
    if not isinstance(key_points, list) or not all(isinstance(p, str) for p in key_points):
        key_points = [NO_KEY_POINTS]

    sentiment = data.get("sentiment")
    if sentiment not in SENTIMENTS:
        sentiment = "neutral"

    word_count = data.get("wordCount")
    if (
        isinstance(word_count, bool)
        or not isinstance(word_count, (int, float))
        or not math.isfinite(word_count)
        or word_count < 0
    ):
        word_count = count_words(original_content)

    return AnalysisResult(
        summary=summary,
        key_points=list(key_points),
        sentiment=sentiment,
        word_count=int(word_count),
    )


def _from_lines(reply: str, original_content: str) -> AnalysisResult:
    lines = [line.strip() for line in reply.splitlines() if line.strip()]
    return AnalysisResult(
        summary=lines[0] if lines else NO_SUMMARY,
        key_points=lines[1:4],
        sentiment="neutral",
        word_count=count_words(original_content),
    )
