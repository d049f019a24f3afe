import pytest

from config import (
    DEFAULT_CONTEXT_BASE_URL,
    DEFAULT_CONTEXT_TIMEOUT_SECONDS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    load_anthropic_config,
    load_context_service_config,
)


def test_load_anthropic_config_uses_defaults() -> None:
    cfg = load_anthropic_config()

    assert cfg.model == DEFAULT_MODEL
    assert cfg.max_tokens == DEFAULT_MAX_TOKENS


def test_load_anthropic_config_honours_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_MODEL", "claude-test")
    monkeypatch.setenv("ANTHROPIC_MAX_TOKENS", "2048")

    cfg = load_anthropic_config()

    assert cfg.model == "claude-test"
    assert cfg.max_tokens == 2048


@pytest.mark.parametrize("raw", ["not-an-int", "0", "-5"])
def test_load_anthropic_config_invalid_tokens_fall_back(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("ANTHROPIC_MODEL", " ")
    monkeypatch.setenv("ANTHROPIC_MAX_TOKENS", raw)

    cfg = load_anthropic_config()

    assert cfg.model == DEFAULT_MODEL
    assert cfg.max_tokens == DEFAULT_MAX_TOKENS


def test_load_anthropic_config_settings_defaults_yield_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    assert load_anthropic_config("claude-from-file", 512).model == "claude-from-file"

    monkeypatch.setenv("ANTHROPIC_MODEL", "claude-from-env")
    cfg = load_anthropic_config("claude-from-file", 512)
    assert cfg.model == "claude-from-env"
    assert cfg.max_tokens == 512


def test_context_service_disabled_without_key() -> None:
    assert load_context_service_config() is None


def test_context_service_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACONTEXT_API_KEY", " sk-ctx ")
    monkeypatch.setenv("ACONTEXT_BASE_URL", "http://localhost:8029/api/v1/")
    monkeypatch.setenv("ACONTEXT_TIMEOUT_SECONDS", "2.5")

    cfg = load_context_service_config()

    assert cfg is not None
    assert cfg.api_key == "sk-ctx"
    assert cfg.base_url == "http://localhost:8029/api/v1"
    assert cfg.timeout_seconds == 2.5


def test_context_service_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACONTEXT_API_KEY", "sk-ctx")
    monkeypatch.setenv("ACONTEXT_TIMEOUT_SECONDS", "soon")

    cfg = load_context_service_config()

    assert cfg.base_url == DEFAULT_CONTEXT_BASE_URL
    assert cfg.timeout_seconds == DEFAULT_CONTEXT_TIMEOUT_SECONDS
    redacted = cfg.redacted()
    assert "sk-ctx" not in str(redacted)
    assert redacted["api_key_present"] is True
