"""Turn an analysis summary into an MP3 via ElevenLabs."""

import logging
import re
import uuid
from typing import List, Optional

import httpx
from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs
from elevenlabs.core.api_error import ApiError

from ..config import (
    AUDIO_DIR,
    AUDIO_URL_PREFIX,
    ELEVENLABS_API_KEY,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_VOICE_ID,
)
from ..errors import (
    ConfigurationError,
    InvalidSynthesisInputError,
    SynthesisAuthError,
    SynthesisError,
    SynthesisRateLimitError,
)
from ..models import AudioResult

logger = logging.getLogger(__name__)

MAX_SPEECH_CHARS = 2000
WORDS_PER_MINUTE = 150
OUTPUT_FORMAT = "mp3_44100_128"

VOICE_SETTINGS = VoiceSettings(
    stability=0.5,
    similarity_boost=0.75,
    use_speaker_boost=True,
    speed=1.0,
)

# Word characters (letters with diacritics, digits), whitespace and basic punctuation
_DISALLOWED_CHARS_RE = re.compile(r"[^\w\s.,!?;:()]")

_client: Optional[ElevenLabs] = None


def _get_client() -> ElevenLabs:
    global _client
    if _client is None:
        if not ELEVENLABS_API_KEY:
            raise ConfigurationError("ELEVENLABS_API_KEY is not defined in environment variables")
        _client = ElevenLabs(api_key=ELEVENLABS_API_KEY)
    return _client


def prepare_text_for_speech(text: str) -> str:
    """Strip unsupported characters, collapse whitespace and cap the length."""
    text = _DISALLOWED_CHARS_RE.sub("", text or "")
    text = re.sub(r"\s+", " ", text).strip()
    return text[:MAX_SPEECH_CHARS]


def estimate_duration(text: str) -> int:
    """Estimated speaking time in seconds at WORDS_PER_MINUTE."""
    word_count = len(text.split())
    return round(word_count / WORDS_PER_MINUTE * 60)


def generate_audio_id() -> str:
    return "audio_{}".format(uuid.uuid4().hex)


def _raise_for_api_error(e: ApiError):
    status = e.status_code
    if status == 401:
        raise SynthesisAuthError("Invalid ElevenLabs API key") from e
    if status == 429:
        raise SynthesisRateLimitError("ElevenLabs API rate limit exceeded") from e
    if status in (400, 422):
        raise InvalidSynthesisInputError("Invalid request parameters for ElevenLabs") from e
    raise SynthesisError(f"ElevenLabs API error: {status} {e.body}") from e


def synthesize_speech(text: str) -> AudioResult:
    """Synthesize *text* and store it as ``<AUDIO_DIR>/<audio_id>.mp3``.

    Raises InvalidSynthesisInputError when nothing speakable is left after
    cleaning, ConfigurationError when the API key is missing, and
    SynthesisError (or a subclass) when ElevenLabs or the file write fails.
    """
    clean = prepare_text_for_speech(text)
    if not clean:
        raise InvalidSynthesisInputError("Text is empty after cleaning")

    client = _get_client()

    audio_id = generate_audio_id()
    file_name = "{}.mp3".format(audio_id)
    AUDIO_DIR.mkdir(parents=True, exist_ok=True)
    file_path = AUDIO_DIR / file_name

    logger.info("Synthesizing %d chars with voice %s -> %s", len(clean), ELEVENLABS_VOICE_ID, file_name)

    try:
        audio = client.text_to_speech.convert(
            ELEVENLABS_VOICE_ID,
            text=clean,
            model_id=ELEVENLABS_MODEL_ID,
            output_format=OUTPUT_FORMAT,
            voice_settings=VOICE_SETTINGS,
        )
        # The SDK streams lazily, so API errors can surface while writing
        with open(file_path, "wb") as f:
            for chunk in audio:
                if chunk:
                    f.write(chunk)
    except ApiError as e:
        file_path.unlink(missing_ok=True)
        _raise_for_api_error(e)
    except httpx.HTTPError as e:
        file_path.unlink(missing_ok=True)
        raise SynthesisError(f"ElevenLabs request failed: {e}") from e
    except OSError as e:
        file_path.unlink(missing_ok=True)
        raise SynthesisError(f"Failed to save audio file: {e}") from e

    return AudioResult(
        audio_url="{}/{}".format(AUDIO_URL_PREFIX.rstrip("/"), file_name),
        audio_id=audio_id,
        duration=estimate_duration(clean),
    )


def delete_audio(audio_id: str) -> bool:
    """Remove a narration file; returns False if it was already gone."""
    file_path = AUDIO_DIR / "{}.mp3".format(audio_id)
    try:
        file_path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning("Could not remove audio file %s: %s", file_path, e)
        return False
    logger.info("Removed audio file %s", file_path.name)
    return True


def list_voices() -> List[dict]:
    """Voices available to the configured account.

    Best-effort: any failure is logged and an empty list returned.
    """
    try:
        response = _get_client().voices.get_all()
        return [
            {
                "voice_id": voice.voice_id,
                "name": voice.name,
                "category": voice.category,
            }
            for voice in response.voices
        ]
    except Exception as e:
        logger.error("Error fetching ElevenLabs voices: %s", e)
        return []
