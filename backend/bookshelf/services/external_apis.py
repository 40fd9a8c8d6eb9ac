"""
Open Library client for book metadata enrichment.
"""

import re
from dataclasses import dataclass
from typing import Any

import httpx

from bookshelf.core.config import get_settings

COVERS_URL = "https://covers.openlibrary.org"


@dataclass
class BookMetadata:
    """Enriched book metadata from Open Library."""

    title: str | None = None
    author: str | None = None
    description: str | None = None
    cover_url: str | None = None
    page_count: int | None = None
    open_library_id: str | None = None


class OpenLibraryClient:
    """
    Client for the Open Library API.

    Returns None when Open Library has no match; transport errors and
    unexpected status codes are raised to the caller.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        settings = get_settings()
        self.client = client or httpx.AsyncClient(
            base_url=settings.OPEN_LIBRARY_BASE_URL,
            timeout=settings.OPEN_LIBRARY_TIMEOUT,
            headers={"User-Agent": f"{settings.APP_NAME}/1.0"},
        )

    async def close(self):
        await self.client.aclose()

    async def search_by_isbn(self, isbn: str) -> BookMetadata | None:
        """
        Look up an edition by ISBN.

        Args:
            isbn: ISBN-10 or ISBN-13, hyphens allowed

        Returns:
            BookMetadata if found, None otherwise
        """
        cleaned = clean_isbn(isbn)
        if not cleaned:
            return None

        response = await self.client.get(f"/isbn/{cleaned}.json", follow_redirects=True)
        if response.status_code == 404:
            return None
        response.raise_for_status()

        return await self._parse_edition(response.json(), cleaned)

    async def search_by_title_author(self, title: str, author: str) -> BookMetadata | None:
        """
        Search for a work by title and author, returning the best match.
        """
        response = await self.client.get(
            "/search.json",
            params={"title": title, "author": author, "limit": 1},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()

        docs = response.json().get("docs", [])
        if not docs:
            return None
        return self._parse_search_result(docs[0])

    async def _parse_edition(self, data: dict, isbn: str) -> BookMetadata:
        """Parse edition data, pulling the description from the work record."""
        description = None
        works = data.get("works", [])
        if works and works[0].get("key"):
            description = await self._get_work_description(works[0]["key"])

        cover_url = None
        covers = data.get("covers", [])
        if covers:
            cover_url = f"{COVERS_URL}/b/id/{covers[0]}-L.jpg"
        else:
            cover_url = f"{COVERS_URL}/b/isbn/{isbn}-L.jpg"

        return BookMetadata(
            title=data.get("title"),
            description=description,
            cover_url=cover_url,
            page_count=data.get("number_of_pages"),
            open_library_id=data.get("key", "").replace("/books/", "") or None,
        )

    def _parse_search_result(self, doc: dict) -> BookMetadata:
        cover_url = None
        cover_i = doc.get("cover_i")
        if cover_i:
            cover_url = f"{COVERS_URL}/b/id/{cover_i}-L.jpg"

        return BookMetadata(
            title=doc.get("title"),
            author=_first_or_none(doc.get("author_name", [])),
            cover_url=cover_url,
            page_count=doc.get("number_of_pages_median"),
            open_library_id=doc.get("key", "").replace("/works/", "") or None,
        )

    async def _get_work_description(self, work_key: str) -> str | None:
        response = await self.client.get(f"{work_key}.json")
        if response.status_code != 200:
            return None

        description = response.json().get("description")
        if isinstance(description, dict):
            return description.get("value")
        if isinstance(description, str):
            return description
        return None


class MetadataEnricher:
    """
    Looks a book up by ISBN first, then by title and author.
    """

    def __init__(self, open_library: OpenLibraryClient | None = None):
        self.open_library = open_library or OpenLibraryClient()

    async def close(self):
        await self.open_library.close()

    async def __aenter__(self) -> "MetadataEnricher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def lookup(self, title: str, author: str, isbn: str | None = None) -> BookMetadata | None:
        metadata = None
        if isbn:
            metadata = await self.open_library.search_by_isbn(isbn)
        if metadata is None:
            metadata = await self.open_library.search_by_title_author(title, author)
        return metadata


def clean_isbn(isbn: str) -> str | None:
    """Strip hyphens and spaces; return None unless 10 or 13 characters remain."""
    cleaned = re.sub(r"[^0-9Xx]", "", isbn or "")
    if len(cleaned) not in (10, 13):
        return None
    return cleaned.upper()


def _first_or_none(lst: list) -> Any | None:
    return lst[0] if lst else None
