"""Exception hierarchy shared by the analysis pipeline.

Every error carries a stable ``code`` that the service layer copies into
failure envelopes. The fetch, provider and synthesis families also carry a
``kind`` tag (``timeout``, ``unauthorized``, ``rate_limited`` ...).
"""

from typing import Optional


class WebAnalyzerError(Exception):
    """Base exception for the analysis pipeline."""
    code = "internal_error"


class ConfigurationError(WebAnalyzerError):
    """A required setting (usually an API key) is missing."""
    code = "configuration_error"


class ValidationError(WebAnalyzerError):
    """Bad URL or bad configuration value."""
    code = "validation_error"


class NotFoundError(WebAnalyzerError):
    """Unknown catalog id, or a record the caller does not own."""
    code = "not_found"


class PersistenceError(WebAnalyzerError):
    """The analysis or configuration store failed."""
    code = "persistence_error"


# ---------------------------------------------------------------------------
# Page fetching
# ---------------------------------------------------------------------------

class FetchError(WebAnalyzerError):
    """Could not fetch the page."""
    code = "fetch_error"
    kind = "other"


class FetchTimeoutError(FetchError):
    """The page did not respond within the request timeout."""
    code = "fetch_timeout"
    kind = "timeout"


class PageNotFoundError(FetchError):
    """The server answered 404."""
    code = "fetch_not_found"
    kind = "not_found"


class PageForbiddenError(FetchError):
    """The server answered 403."""
    code = "fetch_forbidden"
    kind = "forbidden"


# ---------------------------------------------------------------------------
# Analysis provider
# ---------------------------------------------------------------------------

class ProviderError(WebAnalyzerError):
    """The completion API failed."""
    code = "provider_error"
    kind = "other"


class ProviderAuthError(ProviderError):
    """The completion API rejected our credentials."""
    code = "provider_unauthorized"
    kind = "unauthorized"


class ProviderRateLimitError(ProviderError):
    """The completion API is throttling us."""
    code = "provider_rate_limited"
    kind = "rate_limited"


class ModelNotFoundError(ProviderError):
    """The completion API does not know the requested model."""
    code = "model_not_found"
    kind = "model_not_found"

    def __init__(self, model_id: str, message: Optional[str] = None):
        self.model_id = model_id
        super().__init__(
            message or f"Model not found: {model_id}. Please check if the model ID is correct."
        )


# ---------------------------------------------------------------------------
# Narration
# ---------------------------------------------------------------------------

class SynthesisError(WebAnalyzerError):
    """Speech synthesis failed."""
    code = "synthesis_error"
    kind = "other"


class SynthesisAuthError(SynthesisError):
    code = "synthesis_unauthorized"
    kind = "unauthorized"


class SynthesisRateLimitError(SynthesisError):
    code = "synthesis_rate_limited"
    kind = "rate_limited"


class InvalidSynthesisInputError(SynthesisError):
    code = "synthesis_invalid_input"
    kind = "invalid_input"
