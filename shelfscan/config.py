import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, built once at startup and passed to the clients that need it."""

    openai_api_key: str = ""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_model: str = "gpt-4o"
    google_books_api_key: Optional[str] = None
    google_books_timeout_seconds: float = 6.0
    environment: str = "development"
    port: int = 5000
    api_prefix: str = "/api3"
    log_level: str = "INFO"

    @property
    def chat_completions_url(self) -> str:
        base = self.openai_base_url.rstrip("/")
        # Accept either the API root or the full endpoint
        if base.endswith("/chat/completions"):
            return base
        return f"{base}/chat/completions"

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        prefix = "/" + os.getenv("API_PREFIX", "/api3").strip("/")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or "",
            openai_base_url=os.getenv("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o",
            google_books_api_key=os.getenv("GOOGLE_BOOKS_API_KEY") or None,
            google_books_timeout_seconds=float(os.getenv("GOOGLE_BOOKS_TIMEOUT_SECONDS", "6.0")),
            environment=os.getenv("ENVIRONMENT", "development"),
            port=int(os.getenv("PORT", "5000")),
            api_prefix="" if prefix == "/" else prefix,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
