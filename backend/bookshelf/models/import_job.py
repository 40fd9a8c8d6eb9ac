import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookshelf.core.database import Base
from bookshelf.models.base import new_uuid, utcnow


class ImportJobStatus(str, enum.Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    COMPLETED_WITH_ERRORS = "CompletedWithErrors"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ImportJobStatus.IN_PROGRESS


class ImportJob(Base):
    """Tracks one bulk import run. Polled by the client until terminal."""

    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    file_name: Mapped[str] = mapped_column(String(255))

    status: Mapped[ImportJobStatus] = mapped_column(
        Enum(
            ImportJobStatus,
            native_enum=False,
            length=30,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=ImportJobStatus.IN_PROGRESS,
        index=True,
    )

    # Row counts
    total_rows: Mapped[int] = mapped_column(Integer, default=0)
    valid_rows: Mapped[int] = mapped_column(Integer, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, default=0)
    imported_rows: Mapped[int] = mapped_column(Integer, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, default=0)

    # JSON list of {row_number, field, message, original_value}
    error_summary_json: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    user: Mapped["User"] = relationship(back_populates="import_jobs")


# Forward reference
from bookshelf.models.user import User  # noqa: E402
