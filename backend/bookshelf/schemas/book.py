"""
Book schemas and the validation rule set shared by single-record creation
and bulk import.
"""

from datetime import date, datetime, timezone

from pydantic import BaseModel, field_validator
from pydantic_core import PydanticCustomError

MAX_TITLE_LENGTH = 255
MAX_AUTHOR_LENGTH = 255
MAX_GENRE_LENGTH = 50
MAX_PUBLISHED_DATE_LENGTH = 50
MAX_EDITION_LENGTH = 100
MAX_ISBN_LENGTH = 20
MIN_RATING = 1
MAX_RATING = 5

# Attribute name -> field label reported in validation errors
FIELD_LABELS = {
    "title": "Title",
    "author": "Author",
    "genres": "Genres",
    "published_date": "PublishedDate",
    "rating": "Rating",
    "edition": "Edition",
    "isbn": "Isbn",
}

# Accepted published-date spellings, tried in order after ISO 8601
DATE_FORMATS = [
    "%Y/%m/%d",  # 2024/01/15
    "%m/%d/%Y",  # 01/15/2024
    "%d.%m.%Y",  # 15.01.2024
    "%B %d, %Y",  # January 15, 2024
    "%b %d, %Y",  # Jan 15, 2024
    "%d %B %Y",  # 15 January 2024
    "%d %b %Y",  # 15 Jan 2024
    "%B %Y",  # January 2024
    "%b %Y",  # Jan 2024
]


def parse_published_date(value: str) -> date | None:
    """Parse a free-text published date, returning None when unrecognized."""
    value = value.strip()
    if not value:
        return None

    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    return None


def normalize_genres(genres: list[str]) -> list[str]:
    """Trim genre names and drop blanks and case-insensitive repeats, keeping order."""
    seen: set[str] = set()
    result = []
    for genre in genres:
        name = genre.strip()
        key = name.lower()
        if not name or key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def _required_text(value: str, label: str, max_length: int) -> str:
    value = value.strip()
    if not value:
        raise PydanticCustomError("required", "{label} is required", {"label": label})
    if len(value) > max_length:
        raise PydanticCustomError(
            "too_long",
            "{label} cannot exceed {max_length} characters",
            {"label": label, "max_length": max_length},
        )
    return value


def _optional_text(value: str | None, label: str, max_length: int) -> str | None:
    if value is None or not value.strip():
        return None
    value = value.strip()
    if len(value) > max_length:
        raise PydanticCustomError(
            "too_long",
            "{label} cannot exceed {max_length} characters",
            {"label": label, "max_length": max_length},
        )
    return value


class BookCreate(BaseModel):
    title: str
    author: str
    genres: list[str]
    published_date: str
    rating: int
    edition: str | None = None
    isbn: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _required_text(v, "Title", MAX_TITLE_LENGTH)

    @field_validator("author")
    @classmethod
    def validate_author(cls, v: str) -> str:
        return _required_text(v, "Author", MAX_AUTHOR_LENGTH)

    @field_validator("genres")
    @classmethod
    def validate_genres(cls, v: list[str]) -> list[str]:
        genres = normalize_genres(v)
        if not genres:
            raise PydanticCustomError("required", "At least one genre is required")
        too_long = [g for g in genres if len(g) > MAX_GENRE_LENGTH]
        if too_long:
            raise PydanticCustomError(
                "too_long",
                "Genre names cannot exceed {max_length} characters",
                {"max_length": MAX_GENRE_LENGTH},
            )
        return genres

    @field_validator("published_date")
    @classmethod
    def validate_published_date(cls, v: str) -> str:
        v = _required_text(v, "Published date", MAX_PUBLISHED_DATE_LENGTH)
        parsed = parse_published_date(v)
        if parsed is None:
            raise PydanticCustomError("invalid_date", "Published date must be a valid date")
        # Books can be published today
        if parsed > datetime.now(timezone.utc).date():
            raise PydanticCustomError("future_date", "Published date cannot be in the future")
        return v

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: int) -> int:
        if not MIN_RATING <= v <= MAX_RATING:
            raise PydanticCustomError(
                "out_of_range",
                "Rating must be between {min} and {max}",
                {"min": MIN_RATING, "max": MAX_RATING},
            )
        return v

    @field_validator("edition")
    @classmethod
    def validate_edition(cls, v: str | None) -> str | None:
        return _optional_text(v, "Edition", MAX_EDITION_LENGTH)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str | None) -> str | None:
        return _optional_text(v, "ISBN", MAX_ISBN_LENGTH)


class BookResponse(BaseModel):
    id: str
    title: str
    author: str
    genres: list[str]
    published_date: str
    rating: int
    edition: str | None
    isbn: str | None
    open_library_id: str | None
    cover_url: str | None
    description: str | None
    page_count: int | None
    created_at: datetime
    updated_at: datetime
