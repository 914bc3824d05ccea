"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants (those live in spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import (
    CARTESIA_DEFAULT_MODEL_ID,
    CARTESIA_DEFAULT_VOICE_ID,
    DEFAULT_SHUTDOWN_PHRASES,
    OFFLINE_DEFAULT_RATE_WPM,
)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_phrases(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if not raw:
        return DEFAULT_SHUTDOWN_PHRASES
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the agent session, which builds every component from it.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Agent
    # ------------------------------------------------------------------

    agent_name: str
    language: str
    shutdown_phrases: tuple[str, ...]

    # ------------------------------------------------------------------
    # ASR
    # ------------------------------------------------------------------

    whisper_model: str
    whisper_device: str | None
    whisper_compute_type: str | None

    # ------------------------------------------------------------------
    # LLM configuration
    # ------------------------------------------------------------------

    llm_provider: str
    llm_model: str
    llm_base_url: str | None
    openai_api_key: str | None
    groq_api_key: str | None
    openrouter_api_key: str | None

    # ------------------------------------------------------------------
    # TTS
    # ------------------------------------------------------------------

    cartesia_api_key: str | None
    cartesia_voice_id: str
    cartesia_model_id: str
    tts_use_streaming: bool
    offline_voice_rate: int

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def llm_api_key(self) -> str | None:
        """API key matching the selected LLM provider."""
        provider = self.llm_provider.lower()
        if provider == "groq":
            return self.groq_api_key
        if provider == "openrouter":
            return self.openrouter_api_key
        return self.openai_api_key

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Every field has a default; missing API keys disable the
        corresponding component instead of failing startup.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            agent_name=os.environ.get("AGENT_NAME", "Jarvis"),
            language=os.environ.get("AGENT_LANGUAGE", "en"),
            shutdown_phrases=_env_phrases("SHUTDOWN_PHRASES"),

            whisper_model=os.environ.get("WHISPER_MODEL", "base"),
            whisper_device=os.environ.get("WHISPER_DEVICE"),
            whisper_compute_type=os.environ.get("WHISPER_COMPUTE_TYPE"),

            llm_provider=os.environ.get("LLM_PROVIDER", "openai"),
            llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
            llm_base_url=os.environ.get("LLM_BASE_URL"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            groq_api_key=os.environ.get("GROQ_API_KEY"),
            openrouter_api_key=os.environ.get("OPENROUTER_API_KEY"),

            cartesia_api_key=os.environ.get("CARTESIA_API_KEY"),
            cartesia_voice_id=os.environ.get("CARTESIA_VOICE_ID", CARTESIA_DEFAULT_VOICE_ID),
            cartesia_model_id=os.environ.get("CARTESIA_MODEL_ID", CARTESIA_DEFAULT_MODEL_ID),
            tts_use_streaming=_env_flag("TTS_USE_STREAMING", True),
            offline_voice_rate=int(os.environ.get("OFFLINE_VOICE_RATE", str(OFFLINE_DEFAULT_RATE_WPM))),
        )
