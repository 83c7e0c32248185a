"""Look up books in the Google Books catalog.

Two lookups back the search flow:

- search: ``intitle:`` query feeding the type-ahead suggestions.
- detail: best single match for a title, normalized into a ``BookRecord``.
"""

from __future__ import annotations

import httpx
import structlog

from .cache import BookCache
from .config import Settings
from .errors import BookNotFoundError, CatalogError, CatalogFetchError
from .http import request_with_retry
from .models import (
    NO_DESCRIPTION,
    PLACEHOLDER_THUMBNAIL,
    UNKNOWN,
    UNKNOWN_AUTHOR,
    BookRecord,
    Candidate,
    SuggestionResult,
    SuggestionStatus,
)

log = structlog.get_logger()


def _join_authors(info: dict) -> str:
    authors = [a for a in info.get("authors") or [] if a]
    return ", ".join(authors) if authors else UNKNOWN_AUTHOR


def _thumbnail(info: dict) -> str:
    links = info.get("imageLinks") or {}
    return links.get("thumbnail") or PLACEHOLDER_THUMBNAIL


def candidate_from_item(item: dict) -> Candidate:
    """Map one search result item to a suggestion."""
    info = item.get("volumeInfo") or {}
    return Candidate(
        id=str(item.get("id", "")),
        title=info.get("title", ""),
        authors=_join_authors(info),
        thumbnail=_thumbnail(info),
    )


def book_record_from_volume(info: dict, fallback_title: str = "") -> BookRecord:
    """Normalize a ``volumeInfo`` payload, substituting defaults per field."""
    categories = [c for c in info.get("categories") or [] if c]
    return BookRecord(
        title=info.get("title") or fallback_title,
        authors=_join_authors(info),
        description=info.get("description") or NO_DESCRIPTION,
        page_count=info.get("pageCount") or UNKNOWN,
        published_date=info.get("publishedDate") or UNKNOWN,
        categories=", ".join(categories) if categories else UNKNOWN,
        thumbnail=_thumbnail(info),
        average_rating=info.get("averageRating") or None,
        ratings_count=info.get("ratingsCount") or 0,
    )


class CatalogClient:
    """Talks to the Google Books volumes endpoint.

    Both lookups raise ``CatalogFetchError`` on transport, HTTP status or
    parse failures. Detail lookups raise ``BookNotFoundError`` on an empty
    result and are cached when a cache is supplied.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
        cache: BookCache | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or Settings()
        self.cache = cache

    async def _volumes(self, params: dict) -> list[dict]:
        if self.settings.books_api_key:
            params["key"] = self.settings.books_api_key
        try:
            resp = await request_with_retry(
                self.client,
                "GET",
                self.settings.books_api_url,
                params=params,
                timeout=self.settings.request_timeout,
                retries=self.settings.max_retries,
                backoff=self.settings.retry_backoff,
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogFetchError(str(e)) from e

        items = (data.get("items") or []) if isinstance(data, dict) else None
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise CatalogFetchError("Unexpected catalog response")
        return items

    async def search(self, query: str) -> list[Candidate]:
        """Return suggestions for a partial title, in catalog order."""
        items = await self._volumes(
            {"q": f"intitle:{query}", "maxResults": self.settings.search_max_results}
        )
        try:
            return [candidate_from_item(item) for item in items]
        except (AttributeError, TypeError) as e:
            raise CatalogFetchError(f"Malformed search result: {e}") from e

    async def fetch_detail(self, title: str) -> BookRecord:
        """Return the best single match for a title."""
        if self.cache:
            cached = self.cache.get(title)
            if cached:
                return book_record_from_volume(cached, title)

        items = await self._volumes({"q": title, "maxResults": 1})
        if not items:
            raise BookNotFoundError(title)

        info = items[0].get("volumeInfo") or {}
        try:
            book = book_record_from_volume(info, title)
        except (AttributeError, TypeError) as e:
            raise CatalogFetchError(f"Malformed volume: {e}") from e
        if self.cache:
            self.cache.put(title, info)
        return book


async def resolve_suggestions(catalog: CatalogClient, query: str) -> SuggestionResult:
    """Run a suggestion search, degrading any failure to "no matches"."""
    try:
        candidates = await catalog.search(query)
    except CatalogError as e:
        log.warning("suggestions_failed", query=query, error=str(e))
        candidates = []

    if not candidates:
        log.debug("suggestions_empty", query=query)
        return SuggestionResult(query=query, status=SuggestionStatus.NO_MATCHES)

    log.debug("suggestions_found", query=query, count=len(candidates))
    return SuggestionResult(
        query=query, status=SuggestionStatus.MATCHES, candidates=tuple(candidates)
    )


async def resolve_detail(catalog: CatalogClient, title: str) -> BookRecord:
    """Resolve a title to a ``BookRecord``.

    Raises ``BookNotFoundError`` when the catalog has no match and
    ``CatalogFetchError`` when the lookup itself fails.
    """
    try:
        book = await catalog.fetch_detail(title)
    except BookNotFoundError:
        log.info("detail_not_found", title=title)
        raise
    except CatalogFetchError as e:
        log.warning("detail_fetch_failed", title=title, error=str(e))
        raise

    log.debug(
        "detail_resolved",
        title=title,
        resolved_title=book.title,
        authors=book.authors,
        has_desc=book.description != NO_DESCRIPTION,
    )
    return book
