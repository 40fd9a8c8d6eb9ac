from datetime import datetime

from pydantic import BaseModel


class ImportErrorItem(BaseModel):
    row_number: int
    field: str
    message: str
    original_value: str | None = None


class BulkImportResponse(BaseModel):
    job_id: str
    file_name: str
    status: str  # InProgress, Completed, CompletedWithErrors, Failed
    total_rows: int
    valid_rows: int
    error_rows: int
    imported_rows: int  # Books actually persisted
    skipped_rows: int  # Duplicates dropped under the skip strategy
    error_summary: list[ImportErrorItem] | None = None
    created_at: datetime
    completed_at: datetime | None = None
