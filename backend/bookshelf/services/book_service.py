from sqlalchemy.orm import Session, selectinload

from bookshelf.models.book import Book, normalize_key
from bookshelf.schemas.book import BookCreate, BookResponse
from bookshelf.services.bulk_writer import ensure_genres


def create_book(db: Session, user_id: int, book_data: BookCreate) -> BookResponse:
    """Add a single book to the user's library."""
    genres = ensure_genres(db, book_data.genres)

    book = Book(
        user_id=user_id,
        title=book_data.title,
        author=book_data.author,
        title_normalized=normalize_key(book_data.title),
        author_normalized=normalize_key(book_data.author),
        published_date=book_data.published_date,
        rating=book_data.rating,
        edition=book_data.edition,
        isbn=book_data.isbn,
    )
    book.genres = [genres[normalize_key(name)] for name in book_data.genres]

    db.add(book)
    db.commit()
    db.refresh(book)
    return to_response(book)


def list_books(
    db: Session,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> list[BookResponse]:
    """List the user's books ordered by title."""
    books = (
        db.query(Book)
        .options(selectinload(Book.genres))
        .filter(Book.user_id == user_id)
        .order_by(Book.title)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [to_response(book) for book in books]


def to_response(book: Book) -> BookResponse:
    return BookResponse(
        id=book.id,
        title=book.title,
        author=book.author,
        genres=[genre.name for genre in book.genres],
        published_date=book.published_date,
        rating=book.rating,
        edition=book.edition,
        isbn=book.isbn,
        open_library_id=book.open_library_id,
        cover_url=book.cover_url,
        description=book.description,
        page_count=book.page_count,
        created_at=book.created_at,
        updated_at=book.updated_at,
    )
