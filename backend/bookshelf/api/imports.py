import os
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from bookshelf.core.config import get_settings
from bookshelf.core.database import get_db
from bookshelf.schemas.imports import BulkImportResponse
from bookshelf.services import auth_service, export_service, import_service
from bookshelf.services.book_dedup import DuplicateStrategy
from bookshelf.services.exceptions import DuplicateConflictError, ImportFailedError

router = APIRouter()

settings = get_settings()


def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


@router.post("/books", response_model=BulkImportResponse)
async def import_books(
    file: UploadFile = File(..., description="CSV file of books"),
    duplicate_strategy: DuplicateStrategy | None = Query(
        None, description="How to treat books already in the library: skip, fail or allow"
    ),
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """
    Import books from a CSV file.

    The header row must contain Title, Author, Genres, PublishedDate and
    Rating columns; Edition and ISBN are optional. Genres is a comma-separated
    list and must be quoted when it holds more than one genre.

    The import runs to completion within the request. The returned job can
    be fetched again from `/imports/jobs/{job_id}`. When the import fails the
    job is still returned, with status 409 for a duplicate conflict and 500
    otherwise.
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")

    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV file",
        )

    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if content_type not in settings.import_allowed_content_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported content type: {file.content_type}",
        )

    size = _upload_size(file)
    if size == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is empty")
    if size > settings.import_max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {settings.IMPORT_MAX_FILE_SIZE_MB}MB",
        )

    options = import_service.ImportOptions.from_settings(
        duplicate_strategy.value if duplicate_strategy else None
    )

    try:
        job = await import_service.process_bulk_import(
            db, file, file.filename, current_user.id, options
        )
    except ImportFailedError as e:
        status_code = (
            status.HTTP_409_CONFLICT
            if isinstance(e.cause, DuplicateConflictError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        body = import_service.build_response(e.job)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    return import_service.build_response(job)


@router.get("/jobs/{job_id}", response_model=BulkImportResponse)
async def get_import_status(
    job_id: str,
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """Check the status of an import job."""
    job_status = import_service.get_import_status(db, job_id, current_user.id)
    if not job_status:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")
    return job_status


@router.get("/jobs", response_model=list[BulkImportResponse])
async def get_import_history(
    limit: int = Query(10, ge=1, le=100),
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """Get the current user's recent import jobs, newest first."""
    return import_service.get_import_history(db, current_user.id, limit)


@router.get("/export")
async def export_books(
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """
    Export the library as CSV in the import format.

    An empty library returns a template with example rows.
    """
    content = export_service.export_books_csv(db, current_user.id)
    file_name = f"library_export_{datetime.now():%Y%m%d_%H%M%S}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
