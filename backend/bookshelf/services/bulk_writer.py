"""
Transactional persistence of import candidates.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookshelf.core.logging import get_logger
from bookshelf.models.book import Book, Genre, normalize_key
from bookshelf.services.csv_parser import BookCandidate
from bookshelf.services.exceptions import PersistenceError

logger = get_logger(__name__)


def ensure_genres(db: Session, names: list[str]) -> dict[str, Genre]:
    """
    Get or create genres for ``names`` without committing.

    Names are matched case-insensitively; a new genre keeps the spelling of
    its first occurrence. Existing genres are loaded with one query and the
    missing ones are added in one flush.

    Returns:
        Mapping of normalized name to Genre
    """
    spellings: dict[str, str] = {}
    for name in names:
        key = normalize_key(name)
        if key and key not in spellings:
            spellings[key] = name.strip()

    if not spellings:
        return {}

    genres = {
        genre.name_normalized: genre
        for genre in db.query(Genre).filter(Genre.name_normalized.in_(list(spellings))).all()
    }

    missing = [
        Genre(name=spelling, name_normalized=key)
        for key, spelling in spellings.items()
        if key not in genres
    ]
    if missing:
        db.add_all(missing)
        db.flush()
        genres.update((genre.name_normalized, genre) for genre in missing)
        logger.info(f"Created {len(missing)} new genres")

    return genres


def bulk_create_books(db: Session, candidates: list[BookCandidate], user_id: int) -> int:
    """
    Persist all candidates and their genres in a single transaction.

    Either every book is committed or nothing is: on any error the session
    is rolled back and PersistenceError is raised.

    Returns:
        Number of books persisted
    """
    if not candidates:
        return 0

    try:
        genres = ensure_genres(db, [name for c in candidates for name in c.genres])

        books = []
        for candidate in candidates:
            book = Book(
                user_id=user_id,
                title=candidate.title,
                author=candidate.author,
                title_normalized=normalize_key(candidate.title),
                author_normalized=normalize_key(candidate.author),
                published_date=candidate.published_date,
                rating=candidate.rating,
                edition=candidate.edition,
                isbn=candidate.isbn,
                open_library_id=candidate.external_id,
                cover_url=candidate.cover_url,
                description=candidate.description,
                page_count=candidate.page_count,
            )
            book.genres = _unique(genres[normalize_key(name)] for name in candidate.genres)
            books.append(book)

        db.add_all(books)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Bulk write failed, rolled back {len(candidates)} books: {e}")
        raise PersistenceError(f"Failed to save imported books: {e}") from e
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Persisted {len(books)} books",
        extra={"extra_fields": {"user_id": user_id, "books": len(books)}},
    )
    return len(books)


def _unique(genres) -> list[Genre]:
    seen: set[int] = set()
    result = []
    for genre in genres:
        if id(genre) not in seen:
            seen.add(id(genre))
            result.append(genre)
    return result
