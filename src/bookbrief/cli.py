"""Command line entry point: look up a book, print its summary, optionally read it aloud."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import textwrap
from typing import Optional

import httpx
import structlog
from dotenv import load_dotenv

from bookbrief.core.cache import BookCache
from bookbrief.core.catalog import CatalogClient, resolve_suggestions
from bookbrief.core.config import Settings
from bookbrief.core.models import POPULAR_BOOKS, ErrorKind, Phase, ViewState
from bookbrief.core.orchestrator import Orchestrator
from bookbrief.core.presentation import star_rating
from bookbrief.core.speech import SpeechController, default_engine
from bookbrief.core.summarizer import SummaryGenerator

ERROR_MESSAGES = {
    ErrorKind.NO_TITLE: "No book title provided.",
    ErrorKind.NOT_FOUND: "Book not found. Try a more exact title.",
    ErrorKind.FETCH_FAILED: "Error fetching book details. Please try again.",
}
VOICES_TIMEOUT = 5.0


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _catalog(client: httpx.AsyncClient, settings: Settings, use_cache: bool) -> CatalogClient:
    return CatalogClient(client, settings, BookCache() if use_cache else None)


def format_state(state: ViewState) -> str:
    """Render a resolved view state as plain text."""
    if state.phase is Phase.ERROR and state.error:
        return ERROR_MESSAGES[state.error]
    book = state.book
    if book is None:
        return ""

    lines = [f"{book.title}", f"by {book.authors}", ""]
    lines.append(f"Published: {book.published_date}    Pages: {book.page_count}")
    lines.append(f"Categories: {book.categories}")
    if book.average_rating:
        stars = "".join(
            {"full": "*", "half": "+", "empty": "."}[s] for s in star_rating(book.average_rating)
        )
        lines.append(f"Rating: {stars} {book.average_rating} ({book.ratings_count})")
    if state.summary:
        lines += ["", "100-Word Summary", textwrap.fill(state.summary.text, width=78)]
    return "\n".join(lines)


async def run_search(query: str, settings: Settings, use_cache: bool = True) -> int:
    if len(query.strip()) < settings.min_query_length:
        print(f"Type at least {settings.min_query_length} characters to search.")
        return 1
    async with httpx.AsyncClient() as client:
        result = await resolve_suggestions(_catalog(client, settings, use_cache), query.strip())
    if not result.candidates:
        print("No books found.")
        return 1
    for candidate in result.candidates:
        print(f"{candidate.title} - {candidate.authors}")
    return 0


async def run_summary(
    title: Optional[str],
    settings: Settings,
    speak: bool = False,
    use_cache: bool = True,
) -> int:
    async with httpx.AsyncClient() as client:
        orchestrator = Orchestrator(
            _catalog(client, settings, use_cache),
            SummaryGenerator(client, settings),
            settings,
        )
        try:
            state = await orchestrator.open_title(title)
        finally:
            orchestrator.close()

    print(format_state(state))
    if state.phase is not Phase.READY:
        return 1
    if speak and state.summary and not state.summary.is_fallback:
        await speak_text(state.summary.text, settings)
    return 0


async def speak_text(text: str, settings: Settings) -> None:
    controller = SpeechController(
        default_engine(settings.speech_command),
        preferred_voice=settings.preferred_voice,
        rate=settings.speech_rate,
        pitch=settings.speech_pitch,
    )
    async with controller as speech:
        if not await speech.wait_ready(VOICES_TIMEOUT):
            print("Speech is not available on this system.", file=sys.stderr)
            return
        if speech.play(text):
            await speech.wait_idle()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Concise AI summaries of books.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logs.")
    parser.add_argument(
        "--no-cache", action="store_true", help="Skip the local catalog cache."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the web API.")

    search = sub.add_parser("search", help="List catalog matches for a title.")
    search.add_argument("query")

    summary = sub.add_parser("summary", help="Look up a book and summarize it.")
    summary.add_argument("title", nargs="?", default="")
    summary.add_argument("--speak", action="store_true", help="Read the summary aloud.")
    summary.add_argument("--voice", help="Preferred voice name (substring match).")
    summary.add_argument(
        "--popular",
        type=int,
        metavar="N",
        help="Summarize popular book number N instead of TITLE.",
    )

    sub.add_parser("popular", help="List the popular books.")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    settings = Settings.from_env()
    use_cache = not args.no_cache

    if args.command == "serve":
        from bookbrief.web.app import main as serve

        serve()
        return 0

    if args.command == "popular":
        for i, book in enumerate(POPULAR_BOOKS):
            print(f"{i}. {book.title} - {book.author}")
        return 0

    if args.command == "search":
        return asyncio.run(run_search(args.query, settings, use_cache))

    title = args.title
    if args.popular is not None:
        if not 0 <= args.popular < len(POPULAR_BOOKS):
            print(f"Popular book number must be 0-{len(POPULAR_BOOKS) - 1}.", file=sys.stderr)
            return 2
        title = POPULAR_BOOKS[args.popular].title
    if args.voice:
        settings.preferred_voice = args.voice
    return asyncio.run(run_summary(title, settings, speak=args.speak, use_cache=use_cache))


if __name__ == "__main__":
    raise SystemExit(main())
