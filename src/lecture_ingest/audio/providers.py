"""
Speech-to-text provider adapters.

Both vendors are reached through the OpenAI Python client: OpenAI directly,
Groq through its OpenAI-compatible endpoint. Each adapter translates its
vendor's request shape and response format into a TranscriptionResult.

Model notes:
- OpenAI gpt-4o*-transcribe models only return plain JSON (no segments) but
  honour a free-text prompt; whisper-1 returns verbose JSON with segments.
- Groq Whisper models always return verbose JSON with segments.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from ..cancellation import CancellationToken
from ..config import MB, PipelineSettings
from ..errors import AuthError, InvalidInput, PayloadTooLarge, PipelineError, TransientProviderError
from ..formats import guess_audio_mime_type
from ..models import TranscriptionResult, TranscriptSegment
from ..retry import RetryPolicy
from .utils import is_valid_segment

logger = logging.getLogger(__name__)

OPENAI_MODELS = {
    "gpt4o_mini": "gpt-4o-mini-transcribe",
    "gpt4o": "gpt-4o-transcribe",
    "whisper": "whisper-1",
}

GROQ_MODELS = {
    "whisper": "whisper-large-v3",
    "whisper_turbo": "whisper-large-v3-turbo",
}

# Recognition hints for languages the models tend to misspell
LANGUAGE_PROMPTS = {
    "tr": "Bu bir Türkçe ders kaydıdır. Lütfen doğru Türkçe yazım ve gramer kurallarına dikkat edin.",
}


def prompt_for_language(language: Optional[str]) -> Optional[str]:
    if not language:
        return None
    return LANGUAGE_PROMPTS.get(language.lower())


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a response field from an SDK object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def translate_error(error: Exception) -> PipelineError:
    """
    Map an OpenAI client error onto the pipeline's error taxonomy.

    Credentials problems and malformed requests fail fast; everything else
    (timeouts, connection problems, rate limits, 5xx) is transient.
    """
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(f"Invalid API Key or insufficient permissions: {error}")
    if isinstance(error, openai.APIStatusError):
        if error.status_code == 413:
            return PayloadTooLarge(f"Provider rejected the upload as too large: {error}")
        if error.status_code in (400, 415, 422):
            return InvalidInput(f"Provider rejected the audio: {error}")
    return TransientProviderError(str(error))


class TranscriptionProvider(ABC):
    """
    Capability interface for a speech-to-text backend.

    Subclasses describe the request and parse the response; size checks,
    retries and error translation live here.
    """

    name: str = ""
    default_model: str = ""

    def __init__(
        self,
        client: Optional[OpenAI],
        model: Optional[str] = None,
        max_bytes: int = 25 * MB,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 120.0,
        api_key_name: str = "",
    ):
        """
        Args:
            client: Configured OpenAI-compatible client (None when no credentials are set)
            model: Model name (default: the provider's default model)
            max_bytes: Hard per-file upload ceiling
            retry_policy: Shared retry policy
            timeout: Per-request timeout in seconds
            api_key_name: Name of the credential setting, used in error messages
        """
        self.client = client
        self.model = model or self.default_model
        self.max_bytes = max_bytes
        self.retry_policy = retry_policy or RetryPolicy(max_retries=3, base_delay=1.0)
        self.timeout = timeout
        self.api_key_name = api_key_name

    @property
    def supports_prompt(self) -> bool:
        return False

    def transcribe(
        self,
        audio_bytes: bytes,
        filename: str,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptionResult:
        """
        Transcribe one audio file.

        Args:
            audio_bytes: Audio content (one chunk)
            filename: Filename sent to the vendor; its extension selects the MIME type
            language: ISO-639-1 language hint
            prompt: Free-text recognition hint (dropped for models that ignore prompts)
            cancel_token: Checked before every attempt

        Returns:
            TranscriptionResult with chunk-relative segment times

        Raises:
            PayloadTooLarge: If the audio exceeds the upload ceiling
            AuthError: If credentials are missing or rejected
            TransientProviderError: If every attempt failed
        """
        size = len(audio_bytes)
        if size > self.max_bytes:
            raise PayloadTooLarge(
                f"Audio file is {size / MB:.1f}MB, above the {self.max_bytes / MB:.0f}MB transcription limit"
            )
        if self.client is None:
            raise AuthError(f"{self.api_key_name or 'API key'} is not set")

        if prompt and not self.supports_prompt:
            logger.debug(f"{self.name}/{self.model} does not accept prompts; ignoring prompt")
            prompt = None

        params = self._build_request(language, prompt)

        def _call():
            try:
                file = (filename, audio_bytes, guess_audio_mime_type(filename))
                response = self.client.audio.transcriptions.create(file=file, timeout=self.timeout, **params)
            except openai.OpenAIError as e:
                raise translate_error(e) from e
            return self._parse_response(response)

        return self.retry_policy.call(_call, f"{self.name} transcription", cancel_token)

    @abstractmethod
    def _build_request(self, language: Optional[str], prompt: Optional[str]) -> Dict[str, Any]:
        """Vendor-specific request parameters (excluding the file)."""

    @abstractmethod
    def _parse_response(self, response: Any) -> TranscriptionResult:
        """Translate a vendor response into a TranscriptionResult."""

    def _parse_segments(self, response: Any) -> List[TranscriptSegment]:
        segments = []
        for seg in _field(response, "segments") or []:
            text = (_field(seg, "text") or "").strip()
            if not is_valid_segment(text, _field(seg, "no_speech_prob", 0.0) or 0.0):
                continue
            segments.append(
                TranscriptSegment(
                    start=float(_field(seg, "start", 0.0)),
                    end=float(_field(seg, "end", 0.0)),
                    text=text,
                )
            )
        return segments

    def _verbose_result(self, response: Any) -> TranscriptionResult:
        raw_segments = _field(response, "segments") or []
        # Duration comes from the last segment's end, before filtering
        duration = float(_field(raw_segments[-1], "end", 0.0)) if raw_segments else 0.0
        return TranscriptionResult(
            text=(_field(response, "text") or "").strip(),
            duration=duration,
            provider=self.name,
            model=self.model,
            segments=self._parse_segments(response),
            language=_field(response, "language"),
        )


class OpenAITranscriptionProvider(TranscriptionProvider):
    """OpenAI speech-to-text (gpt-4o-mini-transcribe by default, or whisper-1)."""

    name = "openai"
    default_model = OPENAI_MODELS["gpt4o_mini"]

    @property
    def is_gpt4o_model(self) -> bool:
        return "gpt-4o" in self.model

    @property
    def supports_prompt(self) -> bool:
        return self.is_gpt4o_model

    def _build_request(self, language, prompt):
        params: Dict[str, Any] = {
            "model": self.model,
            "response_format": "json" if self.is_gpt4o_model else "verbose_json",
        }
        if not self.is_gpt4o_model:
            params["timestamp_granularities"] = ["segment"]
        if language:
            params["language"] = language
        if prompt:
            params["prompt"] = prompt
        return params

    def _parse_response(self, response):
        if self.is_gpt4o_model:
            # gpt-4o models return neither segments nor duration
            return TranscriptionResult(
                text=(_field(response, "text") or "").strip(),
                duration=0.0,
                provider=self.name,
                model=self.model,
            )
        return self._verbose_result(response)


class GroqTranscriptionProvider(TranscriptionProvider):
    """Groq Whisper through the OpenAI-compatible endpoint."""

    name = "groq"
    default_model = GROQ_MODELS["whisper"]

    def _build_request(self, language, prompt):
        params: Dict[str, Any] = {
            "model": self.model,
            "response_format": "verbose_json",
            "temperature": 0,
        }
        if language:
            params["language"] = language
        return params

    def _parse_response(self, response):
        return self._verbose_result(response)


PROVIDERS = {
    OpenAITranscriptionProvider.name: OpenAITranscriptionProvider,
    GroqTranscriptionProvider.name: GroqTranscriptionProvider,
}


def create_provider(settings: PipelineSettings, client: Optional[OpenAI] = None) -> TranscriptionProvider:
    """
    Build the configured transcription provider.

    Args:
        settings: Pipeline settings (provider, model, credentials, limits)
        client: Pre-built client; when omitted one is constructed from the settings

    Returns:
        TranscriptionProvider instance

    Raises:
        ValueError: If the configured provider is unknown
    """
    provider_name = (settings.transcription_provider or "openai").lower()
    if provider_name not in PROVIDERS:
        raise ValueError(f"Unknown transcription provider: {provider_name} (expected one of {sorted(PROVIDERS)})")

    if provider_name == "groq":
        api_key, api_key_name, base_url = settings.groq_api_key, "GROQ_API_KEY", settings.groq_api_base_url
    else:
        api_key, api_key_name, base_url = settings.openai_api_key, "OPENAI_API_KEY", None

    if client is None and api_key:
        # Retries are handled by RetryPolicy, not by the SDK
        client = OpenAI(api_key=api_key, base_url=base_url, timeout=settings.transcription_timeout, max_retries=0)

    retry_policy = RetryPolicy(
        max_retries=settings.transcription_max_retries,
        base_delay=settings.transcription_retry_base_delay,
    )
    provider = PROVIDERS[provider_name](
        client=client,
        model=settings.transcription_model or None,
        max_bytes=settings.max_transcription_bytes,
        retry_policy=retry_policy,
        timeout=settings.transcription_timeout,
        api_key_name=api_key_name,
    )
    logger.info(f"Transcription provider: {provider.name}/{provider.model}")
    return provider
