"""
Bulk book import service.

Runs the import pipeline for one uploaded file:
1. Parse and validate the CSV
2. Enrich valid rows with Open Library metadata (best effort)
3. Apply the duplicate strategy
4. Persist the surviving books in one transaction
5. Finalize the import job

Every phase returns a tagged result; row errors are threaded through as an
immutable tuple and stored on the job when it is finalized.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from bookshelf.core.concurrency import run_blocking
from bookshelf.core.config import get_settings
from bookshelf.core.logging import get_logger, import_job_id_var
from bookshelf.models.import_job import ImportJob
from bookshelf.schemas.imports import BulkImportResponse, ImportErrorItem
from bookshelf.services import job_tracker
from bookshelf.services.book_dedup import DuplicateStrategy, resolve_duplicates
from bookshelf.services.bulk_writer import bulk_create_books
from bookshelf.services.csv_parser import BookCandidate, parse_book_csv
from bookshelf.services.enrichment import enrich_candidates
from bookshelf.services.exceptions import (
    DuplicateConflictError,
    ImportFailedError,
    JobFinalizedError,
)
from bookshelf.services.external_apis import MetadataEnricher
from bookshelf.services.pipeline import Abort, ImportRowError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImportOptions:
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    enrichment_batch_size: int = 10
    enrichment_batch_delay: float = 1.0  # seconds
    enrich: bool = True
    reject_unparseable_rating: bool = False

    @classmethod
    def from_settings(cls, duplicate_strategy: str | None = None) -> "ImportOptions":
        settings = get_settings()
        return cls(
            duplicate_strategy=DuplicateStrategy(
                duplicate_strategy or settings.IMPORT_DEFAULT_DUPLICATE_STRATEGY
            ),
            enrichment_batch_size=settings.IMPORT_ENRICHMENT_BATCH_SIZE,
            enrichment_batch_delay=settings.IMPORT_ENRICHMENT_BATCH_DELAY_MS / 1000,
            enrich=settings.IMPORT_ENRICHMENT_ENABLED,
            reject_unparseable_rating=settings.IMPORT_REJECT_UNPARSEABLE_RATING,
        )


async def process_bulk_import(
    db: Session,
    stream: Any,
    file_name: str,
    user_id: int,
    options: ImportOptions | None = None,
    enricher: MetadataEnricher | None = None,
) -> ImportJob:
    """
    Import books from a CSV stream for ``user_id``.

    Returns the finalized job. A file with a missing header row or missing
    required columns produces a Failed job without raising.

    Raises:
        ImportFailedError: a phase failed (including a duplicate conflict
            under the fail strategy); the job has already been marked Failed.
        asyncio.CancelledError: the import was cancelled; the job has already
            been marked Failed, unless the cancellation arrived while the
            final write was committing, in which case the job keeps its
            normal terminal state.
    """
    options = options or ImportOptions.from_settings()

    job = await run_blocking(job_tracker.create_job, db, user_id, file_name)
    token = import_job_id_var.set(job.id)
    errors: tuple[ImportRowError, ...] = ()

    try:
        parsed = await parse_book_csv(stream, options.reject_unparseable_rating)
        if isinstance(parsed, Abort):
            logger.warning(f"Import rejected: {parsed.error.message}")
            return await run_blocking(job_tracker.finalize_job, db, job, (parsed.error,), True)

        errors += parsed.errors
        valid = [c for c in parsed.data if c.is_valid]
        await run_blocking(
            job_tracker.update_counts,
            db,
            job,
            total_rows=len(parsed.data),
            valid_rows=len(valid),
            error_rows=len(parsed.data) - len(valid),
        )
        logger.info(
            f"Parsed {len(parsed.data)} rows",
            extra={"extra_fields": {"valid": len(valid), "errors": len(errors)}},
        )

        if options.enrich and valid:
            valid = await _enrich(valid, options, enricher)

        resolved = await run_blocking(
            resolve_duplicates, db, valid, options.duplicate_strategy, user_id
        )
        if isinstance(resolved, Abort):
            errors += (resolved.error,)
            raise DuplicateConflictError(resolved.error.message)
        errors += resolved.errors

        # Write and finalize together so a cancellation arriving during the
        # commit still leaves the job describing what was persisted
        return await run_blocking(
            _write_and_finalize,
            db,
            job,
            resolved.data.candidates,
            user_id,
            len(valid),
            resolved.data.skipped,
            errors,
        )

    except asyncio.CancelledError:
        logger.warning("Import cancelled")
        await run_blocking(_fail_job, db, job, errors, "Import was cancelled")
        raise
    except Exception as e:
        logger.error(f"Import failed: {e}", exc_info=True)
        await run_blocking(_fail_job, db, job, errors, f"Import operation failed: {e}")
        raise ImportFailedError(job, e) from e
    finally:
        import_job_id_var.reset(token)


async def _enrich(
    candidates: list[BookCandidate],
    options: ImportOptions,
    enricher: MetadataEnricher | None,
) -> list[BookCandidate]:
    if enricher is not None:
        return await enrich_candidates(
            candidates, enricher, options.enrichment_batch_size, options.enrichment_batch_delay
        )

    async with MetadataEnricher() as owned:
        return await enrich_candidates(
            candidates, owned, options.enrichment_batch_size, options.enrichment_batch_delay
        )


def _fail_job(
    db: Session, job: ImportJob, errors: tuple[ImportRowError, ...], message: str
) -> None:
    """Finalize a job as Failed with one extra General error."""
    db.rollback()
    general = ImportRowError(row_number=0, field="General", message=message)
    try:
        job_tracker.finalize_job(db, job, errors + (general,), failed=True)
    except JobFinalizedError:
        logger.warning(f"Import job {job.id} was already finalized as {job.status.value}")


def _write_and_finalize(
    db: Session,
    job: ImportJob,
    candidates: list[BookCandidate],
    user_id: int,
    processed: int,
    skipped: int,
    errors: tuple[ImportRowError, ...],
) -> ImportJob:
    imported = bulk_create_books(db, candidates, user_id)
    job_tracker.update_counts(
        db, job, processed_rows=processed, imported_rows=imported, skipped_rows=skipped
    )
    return job_tracker.finalize_job(db, job, errors)


def get_import_status(db: Session, job_id: str, user_id: int) -> BulkImportResponse | None:
    """Get the status of one of the user's import jobs."""
    job = job_tracker.get_job(db, job_id, user_id)
    if job is None:
        return None
    return build_response(job)


def get_import_history(db: Session, user_id: int, limit: int = 10) -> list[BulkImportResponse]:
    """Get the user's most recent import jobs, newest first."""
    return [build_response(job) for job in job_tracker.list_recent_jobs(db, user_id, limit)]


def build_response(job: ImportJob) -> BulkImportResponse:
    errors = job_tracker.job_errors(job)
    return BulkImportResponse(
        job_id=job.id,
        file_name=job.file_name,
        status=job.status.value,
        total_rows=job.total_rows,
        valid_rows=job.valid_rows,
        error_rows=job.error_rows,
        imported_rows=job.imported_rows,
        skipped_rows=job.skipped_rows,
        error_summary=[ImportErrorItem(**e.to_dict()) for e in errors] or None,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )
