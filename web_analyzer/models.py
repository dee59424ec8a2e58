from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

SENTIMENTS = ("positive", "negative", "neutral")


@dataclass(frozen=True)
class AIModel:
    key: str  # catalog key, e.g. "deepseek-chat"
    id: str  # provider-qualified id sent upstream
    name: str
    provider: str  # "openrouter" or "anthropic"
    vendor: str
    max_tokens: int
    temperature: float
    description: str = ""


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    name: str
    language: str
    system_prompt: str
    user_prompt_template: str
    description: str = ""


@dataclass
class UserAIConfig:
    user_id: str
    model_id: str
    prompt_id: str
    language: str = "en"
    max_content_length: int = 10000
    enable_caching: bool = True
    cache_expiration: int = 3600  # seconds
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ResolvedConfig:
    model: AIModel
    prompt: PromptTemplate
    language: str
    max_content_length: int
    enable_caching: bool
    cache_expiration: int


@dataclass
class WebContent:
    title: str
    content: str
    url: str


@dataclass
class AnalysisResult:
    summary: str
    key_points: list[str] = field(default_factory=list)
    sentiment: str = "neutral"  # positive, negative, neutral
    word_count: int = 0


@dataclass
class AudioResult:
    audio_url: str
    audio_id: str
    duration: int  # seconds, estimated


@dataclass
class AnalysisRecord:
    url: str
    user_id: str
    analysis: AnalysisResult
    audio: AudioResult
    timestamp: datetime
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class AnalysisOutcome:
    record: AnalysisRecord
    cached: bool = False
