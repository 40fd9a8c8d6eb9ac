from bookshelf.models.book import Book, Genre, book_genre_association
from bookshelf.models.import_job import ImportJob, ImportJobStatus
from bookshelf.models.user import User

__all__ = [
    "User",
    "Book",
    "Genre",
    "book_genre_association",
    "ImportJob",
    "ImportJobStatus",
]
