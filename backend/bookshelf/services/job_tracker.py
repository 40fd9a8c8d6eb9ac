"""
Import job lifecycle.

A job starts InProgress, has its counts updated at phase boundaries and is
finalized exactly once into Completed, CompletedWithErrors or Failed.
"""

import json
from typing import Iterable

from sqlalchemy.orm import Session

from bookshelf.core.logging import get_logger
from bookshelf.models.base import utcnow
from bookshelf.models.import_job import ImportJob, ImportJobStatus
from bookshelf.services.exceptions import JobFinalizedError
from bookshelf.services.pipeline import ImportRowError

logger = get_logger(__name__)

COUNT_FIELDS = (
    "total_rows",
    "valid_rows",
    "error_rows",
    "processed_rows",
    "imported_rows",
    "skipped_rows",
)


def create_job(db: Session, user_id: int, file_name: str) -> ImportJob:
    job = ImportJob(user_id=user_id, file_name=file_name, status=ImportJobStatus.IN_PROGRESS)
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(
        f"Created import job for {file_name}",
        extra={"extra_fields": {"import_job_id": job.id, "user_id": user_id}},
    )
    return job


def _ensure_mutable(job: ImportJob) -> None:
    if job.status.is_terminal:
        raise JobFinalizedError(job.id, job.status.value)


def update_counts(db: Session, job: ImportJob, **counts: int) -> ImportJob:
    """Record phase counts on an in-progress job."""
    _ensure_mutable(job)
    for name, value in counts.items():
        if name not in COUNT_FIELDS:
            raise ValueError(f"Unknown job count: {name}")
        setattr(job, name, value)
    db.commit()
    return job


def finalize_job(
    db: Session,
    job: ImportJob,
    errors: Iterable[ImportRowError] = (),
    failed: bool = False,
) -> ImportJob:
    """
    Move a job into its terminal state and store the error summary.

    The status is Failed when ``failed`` is set, otherwise it follows the
    error count.
    """
    _ensure_mutable(job)

    errors = list(errors)
    if failed:
        job.status = ImportJobStatus.FAILED
    elif job.error_rows > 0:
        job.status = ImportJobStatus.COMPLETED_WITH_ERRORS
    else:
        job.status = ImportJobStatus.COMPLETED

    job.error_summary_json = json.dumps([e.to_dict() for e in errors]) if errors else None
    job.completed_at = utcnow()
    db.commit()

    logger.info(
        f"Import job finished with status {job.status.value}",
        extra={
            "extra_fields": {
                "import_job_id": job.id,
                "status": job.status.value,
                **{name: getattr(job, name) for name in COUNT_FIELDS},
                "errors": len(errors),
            }
        },
    )
    return job


def get_job(db: Session, job_id: str, user_id: int) -> ImportJob | None:
    """Read-only lookup of a user's job. Returns None when unknown."""
    return (
        db.query(ImportJob)
        .filter(ImportJob.id == job_id, ImportJob.user_id == user_id)
        .first()
    )


def list_recent_jobs(db: Session, user_id: int, limit: int = 10) -> list[ImportJob]:
    return (
        db.query(ImportJob)
        .filter(ImportJob.user_id == user_id)
        .order_by(ImportJob.created_at.desc())
        .limit(limit)
        .all()
    )


def job_errors(job: ImportJob) -> list[ImportRowError]:
    """Deserialize a job's stored error summary."""
    if not job.error_summary_json:
        return []
    return [ImportRowError(**item) for item in json.loads(job.error_summary_json)]
