"""
Lecture structuring using an OpenAI-compatible chat model.

Turns a raw transcript or extracted document text into organized Markdown
study notes. Long inputs are cut at a fixed character ceiling with an
explicit marker so the model knows the text is incomplete.

Key features:
- One fixed system prompt with strict formatting rules
- Heuristic language detection passed to the model as context
- Shared retry policy (fail fast on credential errors)
- Empty completions are treated as failures, never as blank notes
"""

import logging
from dataclasses import dataclass
from typing import Optional

import openai
from openai import OpenAI

from .cancellation import CancellationToken
from .config import PipelineSettings
from .errors import AuthError, EmptyLLMResponse, TransientProviderError
from .language import detect_language, language_name
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[Note: Transcription was truncated due to length]"

STRUCTURING_PROMPT = """You are an expert at transforming raw lecture transcriptions into well-structured, digestible content.

Transform the following lecture transcription into a well-organized document:

## Structure Requirements:
1. **Title**: Create a concise, descriptive title (# heading)
2. **Overview**: 2-3 sentences capturing the main topics (no meta-commentary like "This covers..." - just state the key points directly)
3. **Main Sections**: Organize into logical sections with clear headlines (##)
4. **Key Points**: Use bullet points for important concepts, definitions, and takeaways
5. **Sub-sections**: Use sub-headlines (###) when needed for complex topics
6. **Tables**: When comparing items, listing properties, or showing structured data, use markdown tables

## Formatting Guidelines:
- Bold (**text**) for key terms and important concepts
- Italic (*text*) for emphasis or technical terms on first use
- Use numbered lists for sequential steps or processes
- Use tables for comparisons, schedules, or structured information
- Use `code` formatting for technical terms, commands, or formulas
- Keep paragraphs short (2-4 sentences max)

## Content Guidelines:
- Write in direct, informative language - NOT as if describing notes
- WRONG: "This section reviews...", "The lecture discusses...", "These notes cover..."
- RIGHT: Just present the information directly as structured content
- Preserve all important information from the original
- Fix transcription errors and awkward phrasing
- Remove filler words, repetitions, and verbal tics
- Maintain the logical flow of the lecture
- Do NOT add information that wasn't in the original
- Do NOT use meta-language referring to the document itself
- Write in the same language as the transcription

Output clean Markdown format."""

LANGUAGE_GUIDANCE = {
    "tr": "Pay close attention to correct Turkish spelling, including the characters ç, ğ, ı, İ, ö, ş and ü.",
}


@dataclass
class StructuringResult:
    """Structured Markdown plus the language it was written in."""

    structured_text: str
    detected_language: Optional[str] = None


class TextStructurer:
    """
    Convert raw lecture text into structured Markdown with a chat model.

    The client is constructed once by the caller and shared across jobs.
    """

    def __init__(
        self,
        client: Optional[OpenAI],
        model: str = "gpt-4o-mini",
        max_input_chars: int = 100_000,
        retry_policy: Optional[RetryPolicy] = None,
        temperature: float = 0.3,
        max_tokens: int = 16000,
        timeout: float = 180.0,
    ):
        """
        Args:
            client: OpenAI-compatible client (None when no credentials are set)
            model: Chat model name
            max_input_chars: Input ceiling; longer text is truncated with a marker
            retry_policy: Shared retry policy (default: 2 retries, 2s base delay)
            temperature: Sampling temperature
            max_tokens: Completion token limit
            timeout: Per-request timeout in seconds
        """
        self.client = client
        self.model = model
        self.max_input_chars = max_input_chars
        self.retry_policy = retry_policy or RetryPolicy(max_retries=2, base_delay=2.0)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PipelineSettings, client: Optional[OpenAI] = None) -> "TextStructurer":
        if client is None and settings.llm_api_key:
            client = OpenAI(
                api_key=settings.llm_api_key,
                base_url=settings.llm_api_base_url or None,
                timeout=settings.llm_timeout,
                max_retries=0,
            )
        return cls(
            client=client,
            model=settings.llm_model,
            max_input_chars=settings.llm_max_input_chars,
            retry_policy=RetryPolicy(max_retries=settings.llm_max_retries, base_delay=settings.llm_retry_base_delay),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_output_tokens,
            timeout=settings.llm_timeout,
        )

    def prepare_input(self, raw_text: str) -> str:
        """Apply the input ceiling, appending the truncation marker when text is cut."""
        if len(raw_text) <= self.max_input_chars:
            return raw_text
        logger.warning(f"Text too long ({len(raw_text)} chars), truncating to {self.max_input_chars}")
        return raw_text[: self.max_input_chars] + TRUNCATION_MARKER

    def build_messages(self, text: str, title: str, language: Optional[str]):
        user_content = f'Lecture Title: "{title}"\n\n'
        if language:
            user_content += f"Detected language: {language_name(language)}\n"
            guidance = LANGUAGE_GUIDANCE.get(language)
            if guidance:
                user_content += f"{guidance}\n"
            user_content += "\n"
        user_content += f"Transcription:\n\n{text}"
        return [
            {"role": "system", "content": STRUCTURING_PROMPT},
            {"role": "user", "content": user_content},
        ]

    def structure(
        self,
        raw_text: str,
        title: str,
        language_hint: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StructuringResult:
        """
        Structure raw lecture text into Markdown.

        Args:
            raw_text: Transcript or extracted document text
            title: Lecture title, given to the model as context
            language_hint: ISO-639-1 code to use instead of detection
            cancel_token: Checked before every attempt

        Returns:
            StructuringResult with non-empty Markdown

        Raises:
            AuthError: If credentials are missing or rejected
            EmptyLLMResponse: If the model returned no content after all retries
            TransientProviderError: If every attempt failed
        """
        if self.client is None:
            raise AuthError("LLM_API_KEY is not set")

        language = language_hint or detect_language(raw_text)
        logger.info(f"Structuring text: {title}, length: {len(raw_text)} chars, language: {language or 'unknown'}")

        messages = self.build_messages(self.prepare_input(raw_text), title, language)

        def _call() -> str:
            try:
                completion = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
            except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
                raise AuthError(f"Invalid API Key or insufficient permissions: {e}") from e
            except openai.OpenAIError as e:
                raise TransientProviderError(str(e)) from e

            content = completion.choices[0].message.content if completion.choices else None
            if not content or not content.strip():
                raise EmptyLLMResponse("LLM returned empty response")
            return content

        structured_text = self.retry_policy.call(_call, "LLM structuring", cancel_token)
        logger.info(f"Structuring complete, output length: {len(structured_text)} chars")
        return StructuringResult(structured_text=structured_text, detected_language=language_name(language))
