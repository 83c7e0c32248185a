"""Display helpers for book payloads: category tag styles and star ratings."""

from __future__ import annotations

import zlib

from .models import BookRecord

TAG_STYLES = (
    "bg-blue-100 text-blue-800 border-blue-200",
    "bg-green-100 text-green-800 border-green-200",
    "bg-indigo-100 text-indigo-800 border-indigo-200",
    "bg-purple-100 text-purple-800 border-purple-200",
    "bg-pink-100 text-pink-800 border-pink-200",
)


def category_style(category: str) -> str:
    """Stable style class for a category tag (same text, same style)."""
    return TAG_STYLES[zlib.crc32(category.strip().lower().encode("utf-8")) % len(TAG_STYLES)]


def star_rating(rating: float | None, stars: int = 5) -> list[str]:
    """Break a rating into ``full``/``half``/``empty`` stars. Empty list if unrated."""
    if not rating:
        return []
    full = int(rating)
    half = rating % 1 >= 0.5
    result = []
    for i in range(stars):
        if i < full:
            result.append("full")
        elif i == full and half:
            result.append("half")
        else:
            result.append("empty")
    return result


def book_payload(book: BookRecord) -> dict:
    """JSON payload for the detail view."""
    return {
        "title": book.title,
        "authors": book.authors,
        "description": book.description,
        "page_count": book.page_count,
        "published_date": book.published_date,
        "categories": [
            {"name": name, "style": category_style(name)} for name in book.category_list
        ],
        "thumbnail": book.thumbnail,
        "average_rating": book.average_rating,
        "ratings_count": book.ratings_count,
        "stars": star_rating(book.average_rating),
    }
