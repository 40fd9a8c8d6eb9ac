from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookshelf.core.database import Base
from bookshelf.models.base import utcnow


class User(Base):
    """Library owner. Credentials live with the identity service that issues tokens."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    books: Mapped[list["Book"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    import_jobs: Mapped[list["ImportJob"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


# Forward references for type hints
from bookshelf.models.book import Book  # noqa: E402
from bookshelf.models.import_job import ImportJob  # noqa: E402
