"""
Duplicate detection for bulk imports.

Candidates are matched against the owner's existing books on the
(title, author) pair, trimmed and lowercased.
"""

import enum
from dataclasses import dataclass

from sqlalchemy import tuple_
from sqlalchemy.orm import Session

from bookshelf.core.logging import get_logger
from bookshelf.models.book import Book
from bookshelf.services.csv_parser import BookCandidate
from bookshelf.services.pipeline import Abort, Continue, ImportRowError, PhaseResult

logger = get_logger(__name__)

# Keeps the IN clause under database bind-parameter limits
MAX_KEYS_PER_QUERY = 1000


class DuplicateStrategy(str, enum.Enum):
    SKIP = "skip"  # drop candidates that already exist
    FAIL = "fail"  # abort the whole import if any candidate exists
    ALLOW = "allow"  # import everything


@dataclass
class DuplicateResolution:
    """Candidates that survived duplicate handling."""

    candidates: list[BookCandidate]
    skipped: int = 0


class DuplicateResolver:
    """Applies a duplicate strategy to import candidates."""

    def __init__(self, db: Session):
        self.db = db

    def find_existing_keys(
        self, user_id: int, keys: set[tuple[str, str]]
    ) -> set[tuple[str, str]]:
        """Return the subset of normalized (title, author) keys the user already owns."""
        if not keys:
            return set()

        existing: set[tuple[str, str]] = set()
        key_list = sorted(keys)
        for start in range(0, len(key_list), MAX_KEYS_PER_QUERY):
            chunk = key_list[start : start + MAX_KEYS_PER_QUERY]
            rows = (
                self.db.query(Book.title_normalized, Book.author_normalized)
                .filter(
                    Book.user_id == user_id,
                    tuple_(Book.title_normalized, Book.author_normalized).in_(chunk),
                )
                .distinct()
                .all()
            )
            existing.update((title, author) for title, author in rows)

        return existing

    def resolve(
        self,
        candidates: list[BookCandidate],
        strategy: DuplicateStrategy,
        user_id: int,
    ) -> PhaseResult[DuplicateResolution]:
        """
        Filter candidates according to ``strategy``.

        Returns:
            Continue(DuplicateResolution), or Abort when the fail strategy
            finds at least one existing book.
        """
        if strategy == DuplicateStrategy.ALLOW or not candidates:
            return Continue(DuplicateResolution(candidates=list(candidates)))

        existing = self.find_existing_keys(user_id, {c.duplicate_key for c in candidates})

        if strategy == DuplicateStrategy.FAIL:
            duplicates = [c for c in candidates if c.duplicate_key in existing]
            if duplicates:
                sample = ", ".join(f"'{c.title}' by {c.author}" for c in duplicates[:3])
                return Abort(
                    ImportRowError(
                        row_number=duplicates[0].row_number,
                        field="Duplicates",
                        message=(
                            f"Found {len(duplicates)} duplicate books. Import aborted. "
                            f"Examples: {sample}"
                        ),
                    )
                )
            return Continue(DuplicateResolution(candidates=list(candidates)))

        kept = [c for c in candidates if c.duplicate_key not in existing]
        skipped = len(candidates) - len(kept)
        if skipped:
            logger.info(
                f"Skipped {skipped} duplicate books",
                extra={"extra_fields": {"skipped": skipped, "user_id": user_id}},
            )
        return Continue(DuplicateResolution(candidates=kept, skipped=skipped))


def resolve_duplicates(
    db: Session,
    candidates: list[BookCandidate],
    strategy: DuplicateStrategy,
    user_id: int,
) -> PhaseResult[DuplicateResolution]:
    """
    Convenience function to run duplicate resolution.

    Args:
        db: Database session
        candidates: Valid (optionally enriched) candidates
        strategy: How to treat books the user already owns
        user_id: Owner of the import

    Returns:
        Continue(DuplicateResolution) or Abort(duplicate conflict)
    """
    return DuplicateResolver(db).resolve(candidates, strategy, user_id)
