"""Exceptions raised by the bulk import pipeline."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookshelf.models.import_job import ImportJob


class BulkImportError(Exception):
    """Base class for bulk import failures."""


class DuplicateConflictError(BulkImportError):
    """Raised when the fail strategy finds books that already exist."""


class PersistenceError(BulkImportError):
    """Raised when the bulk write transaction fails and is rolled back."""


class JobFinalizedError(BulkImportError):
    """Raised when a job in a terminal state is mutated."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Import job {job_id} is already {status}")


class ImportFailedError(BulkImportError):
    """Raised by the orchestrator after the job has been marked Failed."""

    def __init__(self, job: "ImportJob", cause: BaseException):
        self.job = job
        self.cause = cause
        super().__init__(f"Import job {job.id} failed: {cause}")
