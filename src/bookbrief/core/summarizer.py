"""Generate short book summaries with the Gemini API."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from .config import Settings
from .errors import SummaryError
from .http import request_with_retry
from .models import SummaryOutcome, SummaryResult

log = structlog.get_logger()

SUMMARY_WORDS = 100

EMPTY_SUMMARY_MESSAGE = (
    "We couldn't generate a summary for this book. Please try another book."
)
FAILED_SUMMARY_MESSAGE = (
    "There was an error generating the summary. Please try again later."
)


def build_prompt(title: str, authors: str, words: int = SUMMARY_WORDS) -> str:
    return (
        f'Generate a concise {words}-word summary of the book "{title}" by {authors}.\n'
        "Focus on the main themes, key insights, and core message.\n"
        "Make the summary informative yet engaging, capturing the essence of the book.\n"
        f"Limit the summary to exactly {words} words."
    )


def extract_text(data: object) -> str:
    """Pull the generated text out of a ``generateContent`` response body."""
    if not isinstance(data, dict):
        raise SummaryError("Unexpected summary response")
    error = data.get("error")
    if error:
        raise SummaryError(str(error.get("message", error) if isinstance(error, dict) else error))

    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    try:
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return "".join(p.get("text") or "" for p in parts if isinstance(p, dict)).strip()
    except (AttributeError, KeyError, TypeError) as e:
        raise SummaryError(f"Malformed summary response: {e}") from e


class SummaryGenerator:
    """Requests a bounded-length summary for a title/author pair.

    ``generate`` never raises: an empty response and a failed request each
    map to their own fallback text and ``SummaryOutcome``.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or Settings()

    @property
    def endpoint(self) -> str:
        return f"{self.settings.gemini_api_url}/{self.settings.gemini_model}:generateContent"

    async def _request(self, prompt: str) -> str:
        if not self.settings.gemini_api_key:
            raise SummaryError("GEMINI_API_KEY is not set")
        try:
            resp = await request_with_retry(
                self.client,
                "POST",
                self.endpoint,
                json={"contents": [{"parts": [{"text": prompt}]}]},
                headers={"x-goog-api-key": self.settings.gemini_api_key},
                timeout=self.settings.request_timeout,
                retries=self.settings.max_retries,
                backoff=self.settings.retry_backoff,
            )
            return extract_text(resp.json())
        except (httpx.HTTPError, ValueError) as e:
            raise SummaryError(str(e)) from e

    async def generate(self, title: str, authors: str) -> SummaryResult:
        prompt = build_prompt(title, authors)
        try:
            text = await asyncio.wait_for(
                self._request(prompt), timeout=self.settings.summary_timeout
            )
        except (SummaryError, asyncio.TimeoutError) as e:
            log.warning("summary_failed", title=title, error=str(e) or type(e).__name__)
            return SummaryResult(title, authors, FAILED_SUMMARY_MESSAGE, SummaryOutcome.FAILED)

        if not text:
            log.info("summary_empty", title=title)
            return SummaryResult(title, authors, EMPTY_SUMMARY_MESSAGE, SummaryOutcome.EMPTY)

        log.debug("summary_generated", title=title, words=len(text.split()))
        return SummaryResult(title, authors, text, SummaryOutcome.GENERATED)
