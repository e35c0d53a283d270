from __future__ import annotations

from shelfscan.config import Settings


def test_from_env_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://gateway.test/v1/")
    monkeypatch.setenv("GOOGLE_BOOKS_API_KEY", "gb-key")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("API_PREFIX", "books/")

    settings = Settings.from_env(dotenv=False)

    assert settings.openai_api_key == "sk-env"
    assert settings.chat_completions_url == "https://gateway.test/v1/chat/completions"
    assert settings.google_books_api_key == "gb-key"
    assert settings.environment == "production"
    assert settings.port == 8080
    assert settings.api_prefix == "/books"


def test_defaults(monkeypatch) -> None:
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL", "GOOGLE_BOOKS_API_KEY", "ENVIRONMENT", "PORT", "API_PREFIX"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env(dotenv=False)

    assert settings.openai_model == "gpt-4o"
    assert settings.chat_completions_url == "https://api.openai.com/v1/chat/completions"
    assert settings.google_books_api_key is None
    assert settings.environment == "development"
    assert settings.api_prefix == "/api3"
