"""Runtime settings read from the environment (and a .env file at entry points)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


@dataclass
class Settings:
    books_api_key: str = ""
    books_api_url: str = GOOGLE_BOOKS_URL
    gemini_api_key: str = ""
    gemini_api_url: str = GEMINI_URL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    search_max_results: int = 10
    debounce_seconds: float = 0.3
    min_query_length: int = 3
    request_timeout: float = 10.0
    detail_timeout: float = 20.0
    summary_timeout: float = 45.0
    max_retries: int = 2
    retry_backoff: float = 0.5
    preferred_voice: str = "Martha"
    speech_rate: float = 1.0
    speech_pitch: float = 1.0
    speech_command: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            books_api_key=env.get("GOOGLE_BOOKS_API_KEY", ""),
            books_api_url=env.get("GOOGLE_BOOKS_URL", defaults.books_api_url),
            gemini_api_key=env.get("GEMINI_API_KEY", ""),
            gemini_api_url=env.get("GEMINI_URL", defaults.gemini_api_url),
            gemini_model=env.get("GEMINI_MODEL", defaults.gemini_model),
            search_max_results=int(
                env.get("BOOKBRIEF_SEARCH_MAX_RESULTS", defaults.search_max_results)
            ),
            debounce_seconds=float(
                env.get("BOOKBRIEF_DEBOUNCE_SECONDS", defaults.debounce_seconds)
            ),
            request_timeout=float(
                env.get("BOOKBRIEF_REQUEST_TIMEOUT", defaults.request_timeout)
            ),
            detail_timeout=float(
                env.get("BOOKBRIEF_DETAIL_TIMEOUT", defaults.detail_timeout)
            ),
            summary_timeout=float(
                env.get("BOOKBRIEF_SUMMARY_TIMEOUT", defaults.summary_timeout)
            ),
            max_retries=int(env.get("BOOKBRIEF_MAX_RETRIES", defaults.max_retries)),
            retry_backoff=float(
                env.get("BOOKBRIEF_RETRY_BACKOFF", defaults.retry_backoff)
            ),
            preferred_voice=env.get(
                "BOOKBRIEF_PREFERRED_VOICE", defaults.preferred_voice
            ),
            speech_command=env.get("BOOKBRIEF_SPEECH_COMMAND", ""),
        )
