"""
OpenAI chat-completions client used by the relay.

Four calls are exposed: plain chat, free-form image analysis, and two vision
extractions (full book records, titles only). The vision calls normalize the
image first and hand the model's text to shelfscan.core.extractor.

All transport failures are translated into shelfscan.errors variants so the
web layer can answer with the right status code.
"""

from typing import Any, Dict, List, Optional
import base64
import logging
import os

import requests

from shelfscan.config import Settings
from shelfscan.core.extractor import extract_books, extract_titles
from shelfscan.errors import MalformedResponse, TransportError, UpstreamTimeout
from shelfscan.models import ExtractedBook
from shelfscan.preprocessing import normalize_image

logger = logging.getLogger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompts")

CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 2000
ANALYZE_MAX_TOKENS = 500
SCAN_MAX_TOKENS = 1000
SCAN_TIMEOUT_SECONDS = 120.0
TITLES_MAX_TOKENS = 500
TITLES_TEMPERATURE = 0.3
TITLES_TIMEOUT_SECONDS = 60.0


def load_prompt(name: str) -> str:
    with open(os.path.join(PROMPTS_DIR, f"{name}.txt"), "r", encoding="utf-8") as f:
        return f.read().strip()


def image_data_url(image: bytes) -> str:
    return f"data:image/jpeg;base64,{base64.b64encode(image).decode('ascii')}"


def _upstream_error_message(resp: requests.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return None


class OpenAIClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.url = settings.chat_completions_url
        self.model = settings.openai_model
        self.prompts = {
            name: load_prompt(name)
            for name in ("scan_books_system", "scan_books_user", "book_titles_system", "book_titles_user")
        }

    def close(self) -> None:
        self.session.close()

    def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        max_tokens: int,
        temperature: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        error_message: str = "Error processing request",
    ) -> str:
        """POST one chat completion and return the first choice's text."""
        if not self.settings.openai_api_key:
            raise TransportError(500, "OPENAI_API_KEY is not set")
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        headers = {
            "Authorization": f"Bearer {self.settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self.session.post(self.url, json=payload, headers=headers, timeout=timeout_seconds)
        except requests.Timeout as e:
            logger.error("OpenAI request timed out after %ss: %s", timeout_seconds, e)
            raise UpstreamTimeout() from e
        except requests.RequestException as e:
            logger.error("OpenAI request failed: %s", e)
            raise TransportError(500, str(e) or error_message) from e

        if resp.status_code >= 400:
            message = _upstream_error_message(resp)
            logger.error("OpenAI API error %s: %s", resp.status_code, message or resp.text[:500])
            raise TransportError(resp.status_code, message or error_message)

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponse("Unexpected response from language model") from e
        if content is None:
            return ""
        if isinstance(content, list):
            # Content-part form: keep the text parts only
            return "".join(p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text")
        if not isinstance(content, str):
            raise MalformedResponse("Unexpected response from language model")
        return content

    def send_message(self, message: str, system_prompt: str = "") -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": message},
        ]
        return self.complete(messages, max_tokens=CHAT_MAX_TOKENS, temperature=CHAT_TEMPERATURE)

    def analyze_image(self, image: bytes, prompt: str) -> str:
        compressed = normalize_image(image)
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_data_url(compressed)}},
                ],
            }
        ]
        return self.complete(messages, max_tokens=ANALYZE_MAX_TOKENS)

    def _vision_messages(self, image: bytes, system_key: str, user_key: str) -> List[Dict[str, Any]]:
        compressed = normalize_image(image)
        return [
            {"role": "system", "content": self.prompts[system_key]},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.prompts[user_key]},
                    {"type": "image_url", "image_url": {"url": image_data_url(compressed)}},
                ],
            },
        ]

    def scan_books(self, image: bytes) -> List[ExtractedBook]:
        messages = self._vision_messages(image, "scan_books_system", "scan_books_user")
        content = self.complete(
            messages,
            max_tokens=SCAN_MAX_TOKENS,
            timeout_seconds=SCAN_TIMEOUT_SECONDS,
            error_message="Error processing image",
        )
        logger.debug("scan_books raw response (%d chars)", len(content))
        return extract_books(content)

    def extract_book_titles(self, image: bytes) -> List[str]:
        messages = self._vision_messages(image, "book_titles_system", "book_titles_user")
        content = self.complete(
            messages,
            max_tokens=TITLES_MAX_TOKENS,
            temperature=TITLES_TEMPERATURE,
            timeout_seconds=TITLES_TIMEOUT_SECONDS,
            error_message="Error processing image",
        )
        logger.debug("extract_book_titles raw response (%d chars)", len(content))
        return extract_titles(content)


def create_llm_client(settings: Settings, *, session: Optional[requests.Session] = None) -> OpenAIClient:
    return OpenAIClient(settings, session=session)
