"""Tests for batched metadata enrichment."""

import asyncio
import threading
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from bookshelf.core import concurrency
from bookshelf.core.concurrency import batch_map, run_blocking
from bookshelf.services.csv_parser import BookCandidate
from bookshelf.services.enrichment import apply_metadata, enrich_candidates
from bookshelf.services.external_apis import (
    BookMetadata,
    MetadataEnricher,
    OpenLibraryClient,
    clean_isbn,
)


def candidate(title: str, author: str = "Frank Herbert", **kwargs) -> BookCandidate:
    return BookCandidate(
        row_number=2,
        title=title,
        author=author,
        genres=["Science Fiction"],
        published_date="1965-08-01",
        rating=5,
        is_valid=True,
        **kwargs,
    )


class TestBatchMap:
    """Test cases for the bounded-concurrency batch map."""

    def test_results_keep_input_order(self):
        async def slow_double(n: int) -> int:
            await asyncio.sleep(0.01 * (5 - n))
            return n * 2

        results = asyncio.run(batch_map([1, 2, 3, 4], slow_double, batch_size=4))
        assert results == [2, 4, 6, 8]

    def test_concurrency_bounded_by_batch_size(self):
        active = 0
        peak = 0

        async def track(_):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1

        asyncio.run(batch_map(list(range(7)), track, batch_size=3))
        assert peak == 3

    def test_delay_only_between_batches(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(concurrency.asyncio, "sleep", fake_sleep)

        async def identity(n):
            return n

        results = asyncio.run(batch_map([1, 2, 3, 4, 5], identity, batch_size=2, delay=1.5))
        assert results == [1, 2, 3, 4, 5]
        assert delays == [1.5, 1.5]

    def test_empty_input(self):
        async def never(_):
            raise AssertionError("should not be called")

        assert asyncio.run(batch_map([], never, batch_size=10, delay=1.0)) == []

    def test_invalid_batch_size(self):
        async def identity(n):
            return n

        with pytest.raises(ValueError):
            asyncio.run(batch_map([1], identity, batch_size=0))

    def test_exceptions_propagate(self):
        async def boom(_):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(batch_map([1, 2], boom, batch_size=2))


class TestRunBlocking:
    def test_returns_result(self):
        assert asyncio.run(run_blocking(sum, [1, 2, 3])) == 6

    def test_exceptions_propagate(self):
        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(run_blocking(boom))

    def test_cancellation_waits_for_thread(self):
        started = threading.Event()
        events = []

        def slow():
            started.set()
            time.sleep(0.2)
            events.append("thread finished")

        async def scenario():
            task = asyncio.create_task(run_blocking(slow))
            await asyncio.get_running_loop().run_in_executor(None, started.wait, 5)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                events.append("cancelled")

        asyncio.run(scenario())

        assert events == ["thread finished", "cancelled"]


class FakeEnricher:
    """Returns canned metadata keyed by title; raises for titles in ``failing``."""

    def __init__(self, metadata: dict[str, BookMetadata], failing: set[str] = frozenset()):
        self.metadata = metadata
        self.failing = failing
        self.calls = []

    async def lookup(self, title, author, isbn=None):
        self.calls.append((title, author, isbn))
        if title in self.failing:
            raise httpx.ConnectError("connection refused")
        return self.metadata.get(title)


class TestEnrichCandidates:
    def test_fills_metadata(self):
        enricher = FakeEnricher(
            {
                "Dune": BookMetadata(
                    open_library_id="OL893415W",
                    cover_url="https://covers.openlibrary.org/b/id/1-L.jpg",
                    description="Desert planet",
                    page_count=412,
                )
            }
        )
        result = asyncio.run(enrich_candidates([candidate("Dune")], enricher, 10, 0.0))

        assert result[0].external_id == "OL893415W"
        assert result[0].cover_url.endswith("1-L.jpg")
        assert result[0].description == "Desert planet"
        assert result[0].page_count == 412

    def test_failures_are_swallowed(self):
        enricher = FakeEnricher(
            {"Emma": BookMetadata(open_library_id="OL1W")},
            failing={"Dune"},
        )
        books = [candidate("Dune"), candidate("Emma", author="Jane Austen"), candidate("Unknown")]

        result = asyncio.run(enrich_candidates(books, enricher, 2, 0.0))

        assert [c.title for c in result] == ["Dune", "Emma", "Unknown"]
        assert result[0].external_id is None
        assert result[1].external_id == "OL1W"
        assert result[2].external_id is None
        assert len(enricher.calls) == 3

    def test_isbn_passed_to_lookup(self):
        enricher = FakeEnricher({})
        asyncio.run(enrich_candidates([candidate("Dune", isbn="978-0441013593")], enricher, 1, 0.0))
        assert enricher.calls == [("Dune", "Frank Herbert", "978-0441013593")]

    def test_apply_metadata_does_not_overwrite(self):
        book = candidate("Dune", cover_url="https://example.com/mine.jpg")
        apply_metadata(book, BookMetadata(cover_url="https://example.com/theirs.jpg", page_count=10))
        assert book.cover_url == "https://example.com/mine.jpg"
        assert book.page_count == 10


class TestMetadataEnricher:
    def test_isbn_lookup_first(self):
        open_library = MagicMock()
        open_library.search_by_isbn = AsyncMock(return_value=BookMetadata(title="Dune"))
        open_library.search_by_title_author = AsyncMock()

        result = asyncio.run(MetadataEnricher(open_library).lookup("Dune", "Frank Herbert", "0441013597"))

        assert result.title == "Dune"
        open_library.search_by_title_author.assert_not_called()

    def test_falls_back_to_title_author(self):
        open_library = MagicMock()
        open_library.search_by_isbn = AsyncMock(return_value=None)
        open_library.search_by_title_author = AsyncMock(return_value=BookMetadata(title="Dune"))

        result = asyncio.run(MetadataEnricher(open_library).lookup("Dune", "Frank Herbert", "0441013597"))

        assert result.title == "Dune"
        open_library.search_by_title_author.assert_awaited_once_with("Dune", "Frank Herbert")

    def test_no_isbn_skips_isbn_lookup(self):
        open_library = MagicMock()
        open_library.search_by_isbn = AsyncMock()
        open_library.search_by_title_author = AsyncMock(return_value=None)

        assert asyncio.run(MetadataEnricher(open_library).lookup("Dune", "Frank Herbert")) is None
        open_library.search_by_isbn.assert_not_called()


def open_library_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/isbn/9780441013593.json":
        return httpx.Response(
            200,
            json={
                "title": "Dune",
                "key": "/books/OL1532643M",
                "covers": [11481354],
                "number_of_pages": 412,
                "works": [{"key": "/works/OL893415W"}],
            },
        )
    if request.url.path == "/works/OL893415W.json":
        return httpx.Response(200, json={"description": {"value": "Set on the desert planet Arrakis"}})
    if request.url.path == "/search.json":
        return httpx.Response(
            200,
            json={
                "docs": [
                    {
                        "title": "Emma",
                        "author_name": ["Jane Austen"],
                        "key": "/works/OL66562W",
                        "cover_i": 42,
                        "number_of_pages_median": 474,
                    }
                ]
            },
        )
    return httpx.Response(404)


class TestOpenLibraryClient:
    def run_with_client(self, call):
        async def scenario():
            http = httpx.AsyncClient(
                transport=httpx.MockTransport(open_library_handler),
                base_url="https://openlibrary.org",
            )
            client = OpenLibraryClient(http)
            try:
                return await call(client)
            finally:
                await client.close()

        return asyncio.run(scenario())

    def test_search_by_isbn(self):
        metadata = self.run_with_client(lambda c: c.search_by_isbn("978-0-441-01359-3"))

        assert metadata.title == "Dune"
        assert metadata.open_library_id == "OL1532643M"
        assert metadata.cover_url == "https://covers.openlibrary.org/b/id/11481354-L.jpg"
        assert metadata.page_count == 412
        assert metadata.description == "Set on the desert planet Arrakis"

    def test_search_by_isbn_not_found(self):
        assert self.run_with_client(lambda c: c.search_by_isbn("0000000000")) is None

    def test_search_by_title_author(self):
        metadata = self.run_with_client(lambda c: c.search_by_title_author("Emma", "Jane Austen"))

        assert metadata.author == "Jane Austen"
        assert metadata.open_library_id == "OL66562W"
        assert metadata.page_count == 474

    def test_invalid_isbn_skips_request(self):
        assert self.run_with_client(lambda c: c.search_by_isbn("123")) is None


class TestCleanIsbn:
    def test_strips_separators(self):
        assert clean_isbn("978-0-441-01359-3") == "9780441013593"
        assert clean_isbn("0 441 01359 7") == "0441013597"

    def test_rejects_wrong_length(self):
        assert clean_isbn("12345") is None
        assert clean_isbn("") is None
