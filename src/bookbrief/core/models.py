"""Data models for book lookups, summaries and the orchestrator's view state."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum

PLACEHOLDER_THUMBNAIL = "/book.png"
UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN = "Unknown"
NO_DESCRIPTION = "No description available"


class Phase(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    SUGGESTING = "suggesting"
    RESOLVING = "resolving"
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"


class ErrorKind(str, Enum):
    NOT_FOUND = "not-found"
    FETCH_FAILED = "fetch-failed"
    NO_TITLE = "no-title"


class SuggestionStatus(str, Enum):
    """Dropdown states: never searched, waiting, empty result, or matches."""

    NOT_SEARCHED = "not-searched"
    LOADING = "loading"
    NO_MATCHES = "no-matches"
    MATCHES = "matches"


class SummaryOutcome(str, Enum):
    GENERATED = "generated"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class Candidate:
    id: str
    title: str
    authors: str = UNKNOWN_AUTHOR
    thumbnail: str = PLACEHOLDER_THUMBNAIL


@dataclass(frozen=True)
class BookRecord:
    title: str
    authors: str = UNKNOWN_AUTHOR
    description: str = NO_DESCRIPTION
    page_count: int | str = UNKNOWN
    published_date: str = UNKNOWN
    categories: str = UNKNOWN
    thumbnail: str = PLACEHOLDER_THUMBNAIL
    average_rating: float | None = None
    ratings_count: int = 0

    @property
    def category_list(self) -> list[str]:
        return [c.strip() for c in self.categories.split(",") if c.strip()]


@dataclass(frozen=True)
class SuggestionResult:
    query: str
    status: SuggestionStatus
    candidates: tuple[Candidate, ...] = ()


@dataclass(frozen=True)
class SummaryResult:
    title: str
    authors: str
    text: str
    outcome: SummaryOutcome

    @property
    def is_fallback(self) -> bool:
        return self.outcome is not SummaryOutcome.GENERATED


@dataclass(frozen=True)
class PopularBook:
    title: str
    author: str
    cover: str


POPULAR_BOOKS: tuple[PopularBook, ...] = (
    PopularBook("Atomic Habits", "James Clear", "/atomic.png"),
    PopularBook("Thinking, Fast and Slow", "Daniel Kahneman", "/thinking.png"),
    PopularBook("Sapiens", "Yuval Noah Harari", "/sapiens.png"),
    PopularBook("The Psychology of Money", "Morgan Housel", "/money.png"),
)


@dataclass(frozen=True)
class ViewState:
    """Immutable snapshot of everything the presentation layer renders."""

    phase: Phase = Phase.IDLE
    error: ErrorKind | None = None
    query: str = ""
    candidates: tuple[Candidate, ...] = ()
    suggestion_status: SuggestionStatus = SuggestionStatus.NOT_SEARCHED
    suggestions_visible: bool = False
    suggestions_loading: bool = False
    title: str = ""
    book: BookRecord | None = None
    summary: SummaryResult | None = None
    retry_available: bool = False

    @property
    def generating(self) -> bool:
        return self.phase is Phase.GENERATING

    def to_dict(self) -> dict:
        data = asdict(self)
        data["phase"] = self.phase.value
        data["error"] = self.error.value if self.error else None
        data["suggestion_status"] = self.suggestion_status.value
        data["generating"] = self.generating
        if self.summary is not None:
            data["summary"]["outcome"] = self.summary.outcome.value
        return data
