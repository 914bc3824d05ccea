# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

import adapters.llm.openai_chat as chat_mod
from adapters.llm.openai_chat import OpenAIChatBackend, build_llm_client
from config import AppConfig
from spec import DEFAULT_SHUTDOWN_PHRASES

_ENV_VARS = (
    "ENV", "LOG_LEVEL", "AGENT_NAME", "AGENT_LANGUAGE", "SHUTDOWN_PHRASES",
    "WHISPER_MODEL", "WHISPER_DEVICE", "WHISPER_COMPUTE_TYPE",
    "LLM_PROVIDER", "LLM_MODEL", "LLM_BASE_URL",
    "OPENAI_API_KEY", "GROQ_API_KEY", "OPENROUTER_API_KEY",
    "CARTESIA_API_KEY", "CARTESIA_VOICE_ID", "CARTESIA_MODEL_ID",
    "TTS_USE_STREAMING", "OFFLINE_VOICE_RATE",
)


@pytest.fixture(name="clean_env")
def fixture_clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.usefixtures("clean_env")
def test_defaults_leave_optional_components_unconfigured() -> None:
    config = AppConfig.load_from_env()

    assert config.llm_provider == "openai"
    assert config.llm_api_key is None
    assert config.cartesia_api_key is None
    assert config.tts_use_streaming is True
    assert config.shutdown_phrases == DEFAULT_SHUTDOWN_PHRASES
    assert build_llm_client(config) is None


def test_provider_selects_matching_key(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("LLM_PROVIDER", "groq")
    clean_env.setenv("GROQ_API_KEY", "gsk-test")
    clean_env.setenv("OPENAI_API_KEY", "sk-test")

    config = AppConfig.load_from_env()
    client = build_llm_client(config)

    assert config.llm_api_key == "gsk-test"
    assert client is not None
    assert "api.groq.com" in str(client.base_url)


def test_env_overrides_are_parsed(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("SHUTDOWN_PHRASES", " Goodbye Jarvis , ,sleep now")
    clean_env.setenv("TTS_USE_STREAMING", "off")
    clean_env.setenv("OFFLINE_VOICE_RATE", "140")
    clean_env.setenv("AGENT_LANGUAGE", "bn")

    config = AppConfig.load_from_env()

    assert config.shutdown_phrases == ("goodbye jarvis", "sleep now")
    assert config.tts_use_streaming is False
    assert config.offline_voice_rate == 140
    assert config.language == "bn"


class FakeCompletions:
    def __init__(self, outcome: Any) -> None:
        self._outcome = outcome
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


def _client(outcome: Any) -> Any:
    completions = FakeCompletions(outcome)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(chat_mod, "log_event", lambda _event: None)


def test_chat_returns_reply_text() -> None:
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hi boss!"))])
    client = _client(response)
    backend = OpenAIChatBackend(client=client, model="gpt-4o-mini")

    result = asyncio.run(backend.chat([{"role": "user", "content": "hi"}]))

    assert result.ok
    assert result.text == "Hi boss!"
    assert client.chat.completions.calls[0]["model"] == "gpt-4o-mini"


def test_chat_without_client_is_not_configured() -> None:
    backend = OpenAIChatBackend(client=None, model="gpt-4o-mini")

    result = asyncio.run(backend.chat([]))

    assert not result.ok
    assert result.not_configured is True


def test_chat_failure_keeps_only_first_line() -> None:
    backend = OpenAIChatBackend(
        client=_client(RuntimeError("upstream exploded\n  at line 3\n  at line 9")),
        model="m",
    )

    result = asyncio.run(backend.chat([]))

    assert not result.ok
    assert result.error == "upstream exploded"


def test_empty_response_is_a_failure() -> None:
    backend = OpenAIChatBackend(client=_client(SimpleNamespace(choices=[])), model="m")

    result = asyncio.run(backend.chat([]))

    assert result.error == "empty response"
