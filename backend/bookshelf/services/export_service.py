"""
CSV export of a user's library in the bulk import format.
"""

import csv
import io

from sqlalchemy.orm import Session, selectinload

from bookshelf.core.logging import get_logger
from bookshelf.models.book import Book

logger = get_logger(__name__)

EXPORT_HEADER = ["Title", "Author", "Genres", "PublishedDate", "Rating", "Edition", "ISBN"]

TEMPLATE_COMMENTS = [
    "# CSV Import Template for Library Books",
    "# Required fields: Title, Author, PublishedDate (YYYY-MM-DD format), Rating (1-5)",
    "# Optional fields: Genres (comma-separated), Edition, ISBN",
    "# Delete these comment lines before importing",
]

TEMPLATE_ROWS = [
    ["The Great Gatsby", "F. Scott Fitzgerald", "Fiction,Classic", "1925-04-10", 5,
     "First Edition", "978-0743273565"],
    ["1984", "George Orwell", "Dystopian,Science Fiction", "1949-06-08", 5,
     "Classic Edition", "978-0452284234"],
]


def export_books_csv(db: Session, user_id: int) -> str:
    """
    Export the user's books, ordered by title.

    An empty library exports a commented template with two example rows.
    """
    books = (
        db.query(Book)
        .options(selectinload(Book.genres))
        .filter(Book.user_id == user_id)
        .order_by(Book.title)
        .all()
    )

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")

    if not books:
        output.write("\n".join(TEMPLATE_COMMENTS) + "\n\n")
        writer.writerow(EXPORT_HEADER)
        writer.writerows(TEMPLATE_ROWS)
        logger.info("No books to export, returning CSV template")
        return output.getvalue()

    writer.writerow(EXPORT_HEADER)
    for book in books:
        genres = sorted((genre.name for genre in book.genres), key=str.lower)
        writer.writerow(
            [
                book.title,
                book.author,
                ",".join(genres),
                book.published_date,
                book.rating,
                book.edition or "",
                book.isbn or "",
            ]
        )

    logger.info(
        f"Exported {len(books)} books",
        extra={"extra_fields": {"user_id": user_id, "books": len(books)}},
    )
    return output.getvalue()
