from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookshelf.core.database import Base
from bookshelf.models.base import new_uuid, utcnow


def normalize_key(value: str) -> str:
    """Normalize a title or author for duplicate matching (trim + casefold)."""
    return value.strip().lower()


# Association table for book <-> genre many-to-many
book_genre_association = Table(
    "book_genres",
    Base.metadata,
    Column("book_id", String(36), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True),
)


class Book(Base):
    """A book in a user's library."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    title: Mapped[str] = mapped_column(String(255), index=True)
    author: Mapped[str] = mapped_column(String(255), index=True)

    # Duplicate detection key; no unique constraint, so concurrent imports can race
    title_normalized: Mapped[str] = mapped_column(String(255), index=True)
    author_normalized: Mapped[str] = mapped_column(String(255), index=True)

    published_date: Mapped[str] = mapped_column(String(50))  # free text, validated on input
    rating: Mapped[int] = mapped_column(Integer)  # 1-5 scale
    edition: Mapped[str | None] = mapped_column(String(100))
    isbn: Mapped[str | None] = mapped_column(String(20), index=True)

    # Enrichment (Open Library)
    open_library_id: Mapped[str | None] = mapped_column(String(50))
    cover_url: Mapped[str | None] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    page_count: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    genres: Mapped[list["Genre"]] = relationship(
        secondary=book_genre_association, back_populates="books"
    )
    user: Mapped["User"] = relationship(back_populates="books")


class Genre(Base):
    """A genre tag shared by all users' books."""

    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))  # spelling of first occurrence
    name_normalized: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    is_system_genre: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    books: Mapped[list["Book"]] = relationship(
        secondary=book_genre_association, back_populates="genres"
    )


# Forward reference
from bookshelf.models.user import User  # noqa: E402
