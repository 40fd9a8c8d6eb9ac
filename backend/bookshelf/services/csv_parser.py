"""
Book import CSV parser.

Streams a CSV upload line by line, maps its header row onto the canonical
import fields and validates every data row with the same rules used for
single-record creation.
"""

import asyncio
import codecs
import csv
import inspect
import io
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from pydantic import ValidationError

from bookshelf.core.logging import get_logger
from bookshelf.models.book import normalize_key
from bookshelf.schemas.book import FIELD_LABELS, BookCreate
from bookshelf.services.pipeline import Abort, Continue, ImportRowError, PhaseResult

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

# Canonical field -> accepted header spellings (compared lowercased and trimmed)
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "title": ("title", "book title", "book_title"),
    "author": ("author", "book author", "book_author"),
    "genres": ("genres", "genre"),
    "publisheddate": (
        "publisheddate",
        "published date",
        "published_date",
        "published",
        "publish_date",
        "publication_date",
        "publication date",
    ),
    "rating": ("rating",),
    "edition": ("edition",),
    "isbn": ("isbn",),
}

REQUIRED_FIELDS = ("title", "author", "genres", "publisheddate", "rating")

_ALIAS_LOOKUP = {
    alias: canonical for canonical, aliases in HEADER_ALIASES.items() for alias in aliases
}


@dataclass
class BookCandidate:
    """A parsed, not yet persisted row from the import file."""

    row_number: int  # 1-based, header is row 1
    title: str = ""
    author: str = ""
    genres: list[str] = field(default_factory=list)
    published_date: str = ""
    rating: int = 1
    edition: str | None = None
    isbn: str | None = None

    # Filled by enrichment
    external_id: str | None = None
    cover_url: str | None = None
    description: str | None = None
    page_count: int | None = None

    is_valid: bool = False
    validation_errors: list[ImportRowError] = field(default_factory=list)

    @property
    def duplicate_key(self) -> tuple[str, str]:
        return normalize_key(self.title), normalize_key(self.author)


def resolve_headers(headers: list[str]) -> dict[str, int]:
    """Map canonical field names to column indexes. First matching column wins."""
    mapping: dict[str, int] = {}
    for index, header in enumerate(headers):
        canonical = _ALIAS_LOOKUP.get(header.strip().strip("\ufeff").strip().lower())
        if canonical and canonical not in mapping:
            mapping[canonical] = index
    return mapping


def split_csv_record(text: str) -> list[str]:
    """
    Split one CSV record; a doubled quote inside a quoted field is a literal quote.

    Raises:
        csv.Error: the text is not exactly one well-formed record
    """
    rows = list(csv.reader(io.StringIO(text), skipinitialspace=True))
    if len(rows) > 1:
        raise csv.Error(f"expected one record, found {len(rows)}")
    return rows[0] if rows else []


def ends_in_quoted_field(line: str, in_quotes: bool = False) -> bool:
    """
    Scan one physical line and report whether a quoted field is still open at its end.

    Follows the csv module's rules: a quote opens a quoted field only at the
    start of a field (after optional spaces), a doubled quote inside one is
    literal, and a quote anywhere else in an unquoted field is plain text.
    """
    if not in_quotes and '"' not in line:
        return False

    at_field_start = not in_quotes
    i, n = 0, len(line)
    while i < n:
        if in_quotes:
            i = line.find('"', i)
            if i == -1:
                return True
            if line.startswith('""', i):
                i += 2
                continue
            in_quotes = False
            i += 1
        elif not at_field_start:
            i = line.find(",", i)
            if i == -1:
                return False
            at_field_start = True
            i += 1
        else:
            char = line[i]
            if char == '"':
                in_quotes = True
                at_field_start = False
            elif char not in " ,":
                at_field_start = False
                continue
            i += 1
    return in_quotes


def row_errors_from_validation(exc: ValidationError, row_number: int) -> list[ImportRowError]:
    """Convert a pydantic ValidationError into per-field import errors."""
    errors = []
    for error in exc.errors():
        attr = str(error["loc"][0]) if error["loc"] else "General"
        value = error.get("input")
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        errors.append(
            ImportRowError(
                row_number=row_number,
                field=FIELD_LABELS.get(attr, attr),
                message=error["msg"],
                original_value=None if value is None else str(value),
            )
        )
    return errors


async def _read_chunks(stream: Any, chunk_size: int) -> AsyncIterator[bytes | str]:
    """Read a sync file object or an object with an awaitable ``read`` (UploadFile)."""
    while True:
        chunk = stream.read(chunk_size)
        if inspect.isawaitable(chunk):
            chunk = await chunk
        if not chunk:
            break
        yield chunk


async def iter_lines(stream: Any, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[str]:
    """Yield decoded physical lines without their line terminators."""
    decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
    buffer = ""

    async for chunk in _read_chunks(stream, chunk_size):
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            yield line.rstrip("\r")

    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


async def iter_records(stream: Any) -> AsyncIterator[tuple[int, str]]:
    """
    Yield (line_number, record_text) pairs.

    A record whose quoted field spans several physical lines is joined back
    together and reported at the line it starts on.
    """
    line_number = 0
    pending: list[str] = []
    in_quotes = False
    start = 0

    async for line in iter_lines(stream):
        line_number += 1
        if not pending:
            start = line_number
        pending.append(line)
        in_quotes = ends_in_quoted_field(line, in_quotes)
        if not in_quotes:
            yield start, "\n".join(pending)
            pending = []

    if pending:
        # Unterminated quote: hand back what we have and let the row fail validation
        yield start, "\n".join(pending)


class BookCSVParser:
    """Parser and validator for book import CSV files."""

    def __init__(self, reject_unparseable_rating: bool = False):
        self.reject_unparseable_rating = reject_unparseable_rating

    async def parse(self, stream: Any) -> PhaseResult[list[BookCandidate]]:
        """
        Parse and validate every data row of ``stream``.

        Returns:
            Continue(candidates, row errors), or Abort with a single structural
            error when the file is empty or lacks a required header.
        """
        records = iter_records(stream)
        try:
            header = await anext(records, None)
            if header is None or not header[1].strip():
                return Abort(
                    ImportRowError(
                        row_number=1,
                        field="File",
                        message="File is empty or has no header row",
                    )
                )

            try:
                header_map = resolve_headers(split_csv_record(header[1]))
            except csv.Error as e:
                return Abort(
                    ImportRowError(
                        row_number=1,
                        field="Headers",
                        message=f"Header row is not valid CSV: {e}",
                        original_value=_preview(header[1]),
                    )
                )
            missing = [name for name in REQUIRED_FIELDS if name not in header_map]
            if missing:
                return Abort(
                    ImportRowError(
                        row_number=1,
                        field="Headers",
                        message=f"Required headers not found: {', '.join(missing)}",
                        original_value=header[1],
                    )
                )

            candidates: list[BookCandidate] = []
            errors: list[ImportRowError] = []

            async for row_number, text in records:
                if not text.strip():
                    continue

                try:
                    values = split_csv_record(text)
                except csv.Error as e:
                    # Oversized field or an unterminated quote running to the end of the file
                    candidate = BookCandidate(row_number=row_number)
                    candidate.validation_errors.append(
                        ImportRowError(
                            row_number=row_number,
                            field="Record",
                            message=f"Row is not valid CSV: {e}",
                            original_value=_preview(text),
                        )
                    )
                else:
                    candidate = self._build_candidate(values, header_map, row_number)
                    self._validate(candidate)
                candidates.append(candidate)
                errors.extend(candidate.validation_errors)

                # Cancellation point between rows
                await asyncio.sleep(0)
        finally:
            await records.aclose()

        return Continue(candidates, tuple(errors))

    def _build_candidate(
        self, values: list[str], header_map: dict[str, int], row_number: int
    ) -> BookCandidate:
        def get(name: str) -> str:
            index = header_map.get(name)
            if index is None or index >= len(values):
                return ""
            return values[index].strip()

        candidate = BookCandidate(
            row_number=row_number,
            title=get("title"),
            author=get("author"),
            genres=[g.strip() for g in get("genres").split(",") if g.strip()],
            published_date=get("publisheddate"),
            edition=get("edition") or None,
            isbn=get("isbn") or None,
        )

        raw_rating = get("rating")
        try:
            candidate.rating = int(raw_rating)
        except ValueError:
            if self.reject_unparseable_rating:
                candidate.validation_errors.append(
                    ImportRowError(
                        row_number=row_number,
                        field="Rating",
                        message="Rating must be a whole number",
                        original_value=raw_rating,
                    )
                )
            else:
                logger.warning(
                    f"Row {row_number}: unparseable rating {raw_rating!r}, defaulting to 1"
                )
                candidate.rating = 1

        return candidate

    def _validate(self, candidate: BookCandidate) -> None:
        try:
            book = BookCreate(
                title=candidate.title,
                author=candidate.author,
                genres=candidate.genres,
                published_date=candidate.published_date,
                rating=candidate.rating,
                edition=candidate.edition,
                isbn=candidate.isbn,
            )
        except ValidationError as exc:
            candidate.validation_errors.extend(
                row_errors_from_validation(exc, candidate.row_number)
            )
            candidate.is_valid = False
            return

        candidate.title = book.title
        candidate.author = book.author
        candidate.genres = book.genres
        candidate.published_date = book.published_date
        candidate.edition = book.edition
        candidate.isbn = book.isbn
        candidate.is_valid = not candidate.validation_errors


def _preview(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


async def parse_book_csv(
    stream: Any, reject_unparseable_rating: bool = False
) -> PhaseResult[list[BookCandidate]]:
    """
    Convenience function to parse a book import CSV.

    Args:
        stream: Binary or text file object, or an object with an async ``read``

    Returns:
        Continue(candidates, errors) or Abort(structural error)
    """
    parser = BookCSVParser(reject_unparseable_rating=reject_unparseable_rating)
    return await parser.parse(stream)
