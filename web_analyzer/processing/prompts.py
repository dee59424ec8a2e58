import re
from types import MappingProxyType
from typing import Dict, List, Optional

from ..errors import NotFoundError
from ..models import PromptTemplate

_PLACEHOLDER_RE = re.compile(r"\{([^{}\s]+)\}")

ANALYSIS_EN_USER_PROMPT = '''Analyze the following website:

Title: {title}
URL: {url}

Page content:
{content}

Please provide analysis in the following JSON format:

{
  "keyPoints": ["Key point 1", "Key point 2", "Key point 3"],
  "summary": "Brief summary of the page (10 sentences)",
  "sentiment": "positive|negative|neutral",
  "wordCount": number_of_words_in_content
}

The analysis should be objective and useful. Key points should contain the most important information from the page.'''

ANALYSIS_PL_USER_PROMPT = '''Przeanalizuj następującą stronę internetową:

Tytuł: {title}
URL: {url}

Treść strony:
{content}

Proszę podaj analizę w następującym formacie JSON:

{
  "keyPoints": ["Kluczowy punkt 1", "Kluczowy punkt 2", "Kluczowy punkt 3"],
  "summary": "Krótkie podsumowanie strony (10 zdań)",
  "sentiment": "positive|negative|neutral",
  "wordCount": liczba_słów_w_treści
}

Analiza powinna być obiektywna i użyteczna. Kluczowe punkty powinny zawierać najważniejsze informacje ze strony.'''

PROMPT_TEMPLATES = MappingProxyType({
    "analysis-en": PromptTemplate(
        id="analysis-en",
        name="Content Analysis (English)",
        language="en",
        system_prompt=(
            "You are an expert in analyzing web content. Your task is to analyze the "
            "provided website and present it in a concise and useful manner. "
            "Always respond in English."
        ),
        user_prompt_template=ANALYSIS_EN_USER_PROMPT,
        description="Standard content analysis prompt in English",
    ),
    "analysis-pl": PromptTemplate(
        id="analysis-pl",
        name="Content Analysis (Polish)",
        language="pl",
        system_prompt=(
            "Jesteś ekspertem w analizie treści internetowych. Twoim zadaniem jest "
            "przeanalizowanie podanej strony internetowej i przedstawienie jej w zwięzły "
            "i użyteczny sposób. Zawsze odpowiadaj po polsku."
        ),
        user_prompt_template=ANALYSIS_PL_USER_PROMPT,
        description="Standard content analysis prompt in Polish",
    ),
})

DEFAULT_PROMPT = "analysis-en"


def get_prompt(prompt_id: Optional[str] = None) -> PromptTemplate:
    """Look up a prompt template by id (the default template when *prompt_id* is None)."""
    key = prompt_id or DEFAULT_PROMPT
    prompt = PROMPT_TEMPLATES.get(key)
    if prompt is None:
        raise NotFoundError(
            f"Prompt '{key}' not found. Available prompts: {', '.join(PROMPT_TEMPLATES)}"
        )
    return prompt


def get_prompts_by_language(language: str) -> List[PromptTemplate]:
    return [p for p in PROMPT_TEMPLATES.values() if p.language == language]


def get_available_prompts() -> List[PromptTemplate]:
    return list(PROMPT_TEMPLATES.values())


def get_supported_languages() -> List[str]:
    """Languages that have at least one template, in catalog order."""
    return list(dict.fromkeys(p.language for p in PROMPT_TEMPLATES.values()))


def format_prompt(template: PromptTemplate, variables: Dict[str, str]) -> str:
    """Substitute ``{key}`` placeholders in the template's user prompt.

    Every occurrence of each supplied key is replaced with the literal value,
    in a single pass so substituted text is never scanned again. Placeholders
    without a matching variable are left as they are, and so are other braces
    (the JSON example in the prompt), which is why this does not use
    ``str.format``.
    """
    def _substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_substitute, template.user_prompt_template)
