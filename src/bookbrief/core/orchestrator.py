"""State machine sequencing suggestions, detail resolution and summary generation."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import structlog

from .catalog import CatalogClient, resolve_detail, resolve_suggestions
from .config import Settings
from .debounce import DebouncedQueryChannel
from .errors import BookNotFoundError, CatalogFetchError
from .models import (
    BookRecord,
    Candidate,
    ErrorKind,
    Phase,
    PopularBook,
    SuggestionStatus,
    ViewState,
)
from .summarizer import SummaryGenerator

log = structlog.get_logger()


class Orchestrator:
    """Owns the view state for one user and drives it from user actions.

    Each resolution gets a request token and each generation a generation
    token. A completion only commits to the view state if its tokens are
    still the newest ones, so a slow response for an earlier title can
    never overwrite a newer book or summary. ``close`` invalidates every
    token, dropping in-flight results silently.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        summarizer: SummaryGenerator,
        settings: Settings | None = None,
    ) -> None:
        self.catalog = catalog
        self.summarizer = summarizer
        self.settings = settings or Settings()
        self.state = ViewState()
        self.channel = DebouncedQueryChannel(
            on_search=self._search,
            on_clear=self._clear_suggestions,
            delay=self.settings.debounce_seconds,
            min_length=self.settings.min_query_length,
        )
        self._request = 0
        self._generation = 0
        self._search_seq = 0
        self._dismissed = False
        self._closed = False

    def snapshot(self) -> ViewState:
        return self.state

    def _set(self, **changes: object) -> None:
        self.state = replace(self.state, **changes)

    # Type-ahead

    def input(self, text: str) -> ViewState:
        """Keystroke: update the query and feed the debounced search."""
        if self._closed:
            return self.state
        self._request += 1
        self._generation += 1
        self._dismissed = False
        # The old list belongs to the previous query; fresh results re-show it.
        self._set(
            phase=Phase.TYPING if text.strip() else Phase.IDLE,
            error=None,
            query=text,
            suggestions_visible=False,
            title="",
            book=None,
            summary=None,
            retry_available=False,
        )
        self.channel.push(text)
        return self.state

    def _clear_suggestions(self) -> None:
        self._search_seq += 1
        self._set(
            candidates=(),
            suggestion_status=SuggestionStatus.NOT_SEARCHED,
            suggestions_visible=False,
            suggestions_loading=False,
        )
        if self.state.phase is Phase.SUGGESTING:
            self._set(phase=Phase.TYPING)

    async def _search(self, query: str) -> None:
        self._search_seq += 1
        seq = self._search_seq
        self._set(suggestions_loading=True, suggestion_status=SuggestionStatus.LOADING)
        try:
            result = await resolve_suggestions(self.catalog, query)
            if seq != self._search_seq or self._closed:
                log.debug("stale_suggestions", query=query)
                return
            self._set(
                candidates=result.candidates,
                suggestion_status=result.status,
                suggestions_visible=not self._dismissed
                and self.state.phase in (Phase.TYPING, Phase.SUGGESTING),
            )
            if self.state.suggestions_visible and result.candidates:
                self._set(phase=Phase.SUGGESTING)
        finally:
            if seq == self._search_seq:
                self._set(suggestions_loading=False)

    def dismiss(self) -> ViewState:
        """Outside click: hide the dropdown, keep the query."""
        self._dismissed = True
        if self.state.suggestions_visible:
            self._set(suggestions_visible=False)
        if self.state.phase is Phase.SUGGESTING:
            self._set(phase=Phase.TYPING)
        return self.state

    def focus(self) -> ViewState:
        """Re-show existing suggestions when the query is still long enough."""
        long_enough = len(self.state.query.strip()) >= self.settings.min_query_length
        if (
            long_enough
            and self.state.candidates
            and self.state.phase in (Phase.TYPING, Phase.SUGGESTING)
        ):
            self._dismissed = False
            self._set(phase=Phase.SUGGESTING, suggestions_visible=True)
        return self.state

    async def wait_for_suggestions(self) -> ViewState:
        await self.channel.drain()
        return self.state

    # Resolution

    async def submit(self) -> ViewState:
        return await self.resolve(self.state.query)

    async def select_suggestion(self, candidate: Candidate) -> ViewState:
        self._set(query=candidate.title)
        return await self.resolve(candidate.title)

    async def select_popular(self, book: PopularBook) -> ViewState:
        return await self.resolve(book.title)

    async def open_title(self, title: str | None) -> ViewState:
        """Addressable entry point: a title carried in the page address."""
        return await self.resolve(title or "")

    async def resolve(self, title: str) -> ViewState:
        """Resolve a title to a book, then chain summary generation."""
        if self._closed:
            return self.state
        self.channel.cancel()
        self._search_seq += 1
        self._request += 1
        self._generation += 1
        token = self._request
        title = (title or "").strip()
        self._set(suggestions_visible=False, suggestions_loading=False)
        if self.state.phase is Phase.SUGGESTING:
            self._set(phase=Phase.TYPING)

        if not title:
            log.info("resolve_no_title")
            self._fail(ErrorKind.NO_TITLE, title="")
            return self.state

        self._set(
            phase=Phase.RESOLVING,
            error=None,
            title=title,
            book=None,
            summary=None,
            retry_available=False,
        )
        try:
            book = await asyncio.wait_for(
                resolve_detail(self.catalog, title), timeout=self.settings.detail_timeout
            )
        except BookNotFoundError:
            if self._is_current(token):
                self._fail(ErrorKind.NOT_FOUND)
            return self.state
        except (CatalogFetchError, asyncio.TimeoutError) as e:
            if isinstance(e, asyncio.TimeoutError):
                log.warning("detail_timeout", title=title)
            if self._is_current(token):
                self._fail(ErrorKind.FETCH_FAILED)
            return self.state

        if not self._is_current(token):
            log.debug("stale_detail", title=title)
            return self.state

        self._set(phase=Phase.GENERATING, book=book)
        await self._generate(token, book)
        return self.state

    async def retry(self) -> ViewState:
        """Regenerate the summary for the book on screen."""
        book = self.state.book
        if self._closed or book is None or self.state.phase not in (
            Phase.READY,
            Phase.GENERATING,
        ):
            log.debug("retry_ignored", phase=self.state.phase.value)
            return self.state

        self._generation += 1
        self._set(phase=Phase.GENERATING, retry_available=False)
        await self._generate(self._request, book)
        return self.state

    async def _generate(self, token: int, book: BookRecord) -> None:
        generation = self._generation
        summary = await self.summarizer.generate(book.title, book.authors)
        if not self._is_current(token) or generation != self._generation:
            log.debug("stale_summary", title=book.title)
            return
        self._set(
            phase=Phase.READY,
            summary=summary,
            retry_available=summary.is_fallback,
        )

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self._request

    def _fail(self, kind: ErrorKind, **changes: object) -> None:
        log.info("resolve_error", kind=kind.value, title=self.state.title)
        self._set(phase=Phase.ERROR, error=kind, book=None, summary=None, **changes)

    def close(self) -> None:
        """Stop reacting: pending searches are cancelled, in-flight results dropped."""
        self._closed = True
        self._request += 1
        self._generation += 1
        self.channel.close()
