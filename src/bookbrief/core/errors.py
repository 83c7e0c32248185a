"""Exceptions raised at the catalog and summarizer boundaries."""

from __future__ import annotations


class BookBriefError(Exception):
    """Base class for all BookBrief errors."""


class CatalogError(BookBriefError):
    """A catalog lookup did not produce a usable result."""


class CatalogFetchError(CatalogError):
    """Network, HTTP status or parse failure talking to the catalog."""


class BookNotFoundError(CatalogError):
    """The catalog answered but had no match for the title."""

    def __init__(self, title: str) -> None:
        super().__init__(f"No book found for {title!r}")
        self.title = title


class SummaryError(BookBriefError):
    """The summarization service failed or returned an unusable body."""
