"""
Configuration management with three-tier precedence system:
1. Default values from codebase
2. Environment variables from .env
3. Explicit overrides passed by the caller (tests, CLI flags)

Precedence: Overrides > Environment Variables > Defaults

PipelineSettings is a typed snapshot of the configuration, built once at
process start and handed to every pipeline component.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

MB = 1024 * 1024

SECRET_KEYS = {"OPENAI_API_KEY", "GROQ_API_KEY", "LLM_API_KEY"}


class ConfigManager:
    """Manages configuration with three-tier precedence."""

    # Default values (Tier 1 - Codebase defaults)
    DEFAULTS = {
        "API_HOST": "0.0.0.0",
        "API_PORT": "5001",
        "API_DEBUG": "false",
        "LOG_LEVEL": "WARNING",
        "JOBS_DIR": "server_jobs",
        "STORAGE_DIR": "server_storage",
        "MAX_WORKERS": "2",
        # Audio normalization
        "CHUNK_DURATION_MINUTES": "5",
        "AUDIO_BITRATE": "64k",
        "AUDIO_SAMPLE_RATE": "16000",
        "FFMPEG_PATH": "",
        "FFPROBE_PATH": "",
        "TRANSCODE_TIMEOUT_SECONDS": "600",
        # Transcription
        "TRANSCRIPTION_PROVIDER": "openai",
        "TRANSCRIPTION_MODEL": "",
        "TRANSCRIPTION_CONCURRENCY": "3",
        "TRANSCRIPTION_TIMEOUT_SECONDS": "120",
        "TRANSCRIPTION_MAX_RETRIES": "3",
        "TRANSCRIPTION_RETRY_BASE_DELAY": "1.0",
        "MAX_TRANSCRIPTION_BYTES": str(25 * MB),
        "OPENAI_API_KEY": "",
        "GROQ_API_KEY": "",
        "GROQ_API_BASE_URL": "https://api.groq.com/openai/v1",
        # Structuring
        "LLM_API_BASE_URL": "https://api.openai.com/v1",
        "LLM_API_KEY": "",
        "LLM_MODEL": "gpt-4o-mini",
        "LLM_MAX_INPUT_CHARS": "100000",
        "LLM_MAX_OUTPUT_TOKENS": "16000",
        "LLM_TEMPERATURE": "0.3",
        "LLM_TIMEOUT_SECONDS": "180",
        "LLM_MAX_RETRIES": "2",
        "LLM_RETRY_BASE_DELAY": "2.0",
        # Documents
        "OCR_MAX_PAGES": "10",
        "OCR_LANGUAGES": "eng+tur",
        "OCR_DPI": "300",
        "OCR_PAGE_TIMEOUT_SECONDS": "120",
        "MAX_DOCUMENT_BYTES": str(100 * MB),
        "MAX_UPLOAD_BYTES": str(500 * MB),
    }

    @staticmethod
    def get(key: str, override: Optional[Any] = None) -> Any:
        """
        Get configuration value with three-tier precedence.

        Args:
            key: Configuration key
            override: Explicit value (highest priority)

        Returns:
            Configuration value from highest priority source

        Priority:
            1. Override (if provided and not empty)
            2. Environment variable
            3. Default value
        """
        # Tier 3: explicit override (highest priority)
        if override is not None and override != "":
            return override

        # Tier 2: Environment variable
        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value

        # Tier 1: Default value
        return ConfigManager.DEFAULTS.get(key, "")

    @staticmethod
    def get_int(key: str, override: Optional[Any] = None) -> int:
        """Get a configuration value as an integer."""
        value = ConfigManager.get(key, override)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Configuration {key} must be an integer, got {value!r}")

    @staticmethod
    def get_float(key: str, override: Optional[Any] = None) -> float:
        """Get a configuration value as a float."""
        value = ConfigManager.get(key, override)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Configuration {key} must be a number, got {value!r}")

    @staticmethod
    def get_bool(key: str, override: Optional[Any] = None) -> bool:
        """Get a configuration value as a boolean ("1", "true", "yes", "on")."""
        value = ConfigManager.get(key, override)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def get_display_value(key: str, override: Optional[Any] = None) -> tuple[Any, str]:
        """
        Get configuration value and its source.

        Returns:
            Tuple of (value, source) where source is 'override', 'env', or 'default'
        """
        if override is not None and override != "":
            return override, "override"

        env_value = os.getenv(key)
        if env_value is not None and env_value != "":
            return env_value, "env"

        default_value = ConfigManager.DEFAULTS.get(key, "")
        return default_value, "default"


@dataclass
class PipelineSettings:
    """Typed configuration snapshot used by the pipeline components."""

    jobs_dir: str = "server_jobs"
    storage_dir: str = "server_storage"
    max_workers: int = 2

    chunk_duration_minutes: float = 5
    audio_bitrate: str = "64k"
    audio_sample_rate: int = 16000
    ffmpeg_path: str = ""
    ffprobe_path: str = ""
    transcode_timeout: float = 600.0

    transcription_provider: str = "openai"
    transcription_model: str = ""
    transcription_concurrency: int = 3
    transcription_timeout: float = 120.0
    transcription_max_retries: int = 3
    transcription_retry_base_delay: float = 1.0
    max_transcription_bytes: int = 25 * MB
    openai_api_key: str = ""
    groq_api_key: str = ""
    groq_api_base_url: str = "https://api.groq.com/openai/v1"

    llm_api_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_max_input_chars: int = 100_000
    llm_max_output_tokens: int = 16000
    llm_temperature: float = 0.3
    llm_timeout: float = 180.0
    llm_max_retries: int = 2
    llm_retry_base_delay: float = 2.0

    ocr_max_pages: int = 10
    ocr_languages: str = "eng+tur"
    ocr_dpi: int = 300
    ocr_page_timeout: float = 120.0
    max_document_bytes: int = 100 * MB
    max_upload_bytes: int = 500 * MB

    @property
    def chunk_duration_seconds(self) -> float:
        return self.chunk_duration_minutes * 60

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None) -> "PipelineSettings":
        """
        Build settings from overrides, environment and defaults.

        Args:
            overrides: Mapping of configuration keys (e.g. "OCR_MAX_PAGES") to values

        Returns:
            PipelineSettings instance
        """
        o = overrides or {}
        get = ConfigManager.get

        def _int(key):
            return ConfigManager.get_int(key, o.get(key))

        def _float(key):
            return ConfigManager.get_float(key, o.get(key))

        return cls(
            jobs_dir=get("JOBS_DIR", o.get("JOBS_DIR")),
            storage_dir=get("STORAGE_DIR", o.get("STORAGE_DIR")),
            max_workers=_int("MAX_WORKERS"),
            chunk_duration_minutes=_float("CHUNK_DURATION_MINUTES"),
            audio_bitrate=get("AUDIO_BITRATE", o.get("AUDIO_BITRATE")),
            audio_sample_rate=_int("AUDIO_SAMPLE_RATE"),
            ffmpeg_path=get("FFMPEG_PATH", o.get("FFMPEG_PATH")),
            ffprobe_path=get("FFPROBE_PATH", o.get("FFPROBE_PATH")),
            transcode_timeout=_float("TRANSCODE_TIMEOUT_SECONDS"),
            transcription_provider=str(get("TRANSCRIPTION_PROVIDER", o.get("TRANSCRIPTION_PROVIDER"))).lower(),
            transcription_model=get("TRANSCRIPTION_MODEL", o.get("TRANSCRIPTION_MODEL")),
            transcription_concurrency=_int("TRANSCRIPTION_CONCURRENCY"),
            transcription_timeout=_float("TRANSCRIPTION_TIMEOUT_SECONDS"),
            transcription_max_retries=_int("TRANSCRIPTION_MAX_RETRIES"),
            transcription_retry_base_delay=_float("TRANSCRIPTION_RETRY_BASE_DELAY"),
            max_transcription_bytes=_int("MAX_TRANSCRIPTION_BYTES"),
            openai_api_key=get("OPENAI_API_KEY", o.get("OPENAI_API_KEY")),
            groq_api_key=get("GROQ_API_KEY", o.get("GROQ_API_KEY")),
            groq_api_base_url=get("GROQ_API_BASE_URL", o.get("GROQ_API_BASE_URL")),
            llm_api_base_url=get("LLM_API_BASE_URL", o.get("LLM_API_BASE_URL")),
            # The LLM key falls back to the OpenAI key, as the summarizer did
            llm_api_key=get("LLM_API_KEY", o.get("LLM_API_KEY")) or get("OPENAI_API_KEY", o.get("OPENAI_API_KEY")),
            llm_model=get("LLM_MODEL", o.get("LLM_MODEL")),
            llm_max_input_chars=_int("LLM_MAX_INPUT_CHARS"),
            llm_max_output_tokens=_int("LLM_MAX_OUTPUT_TOKENS"),
            llm_temperature=_float("LLM_TEMPERATURE"),
            llm_timeout=_float("LLM_TIMEOUT_SECONDS"),
            llm_max_retries=_int("LLM_MAX_RETRIES"),
            llm_retry_base_delay=_float("LLM_RETRY_BASE_DELAY"),
            ocr_max_pages=_int("OCR_MAX_PAGES"),
            ocr_languages=get("OCR_LANGUAGES", o.get("OCR_LANGUAGES")),
            ocr_dpi=_int("OCR_DPI"),
            ocr_page_timeout=_float("OCR_PAGE_TIMEOUT_SECONDS"),
            max_document_bytes=_int("MAX_DOCUMENT_BYTES"),
            max_upload_bytes=_int("MAX_UPLOAD_BYTES"),
        )

    def describe(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """
        Report where each configuration key came from, with secrets masked.

        Returns:
            Mapping of key -> "value (source)"
        """
        o = overrides or {}
        description = {}
        for key in ConfigManager.DEFAULTS:
            value, source = ConfigManager.get_display_value(key, o.get(key))
            if key in SECRET_KEYS:
                value = "***" if value else "(unset)"
            description[key] = f"{value} ({source})"
        return description
