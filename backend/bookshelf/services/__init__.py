from bookshelf.services import (
    auth_service,
    book_service,
    export_service,
    import_service,
    job_tracker,
)
from bookshelf.services.book_dedup import DuplicateResolver, DuplicateStrategy, resolve_duplicates
from bookshelf.services.bulk_writer import bulk_create_books, ensure_genres
from bookshelf.services.csv_parser import BookCandidate, BookCSVParser, parse_book_csv
from bookshelf.services.enrichment import enrich_candidates
from bookshelf.services.exceptions import (
    BulkImportError,
    DuplicateConflictError,
    ImportFailedError,
    JobFinalizedError,
    PersistenceError,
)
from bookshelf.services.external_apis import BookMetadata, MetadataEnricher, OpenLibraryClient
from bookshelf.services.import_service import ImportOptions, process_bulk_import
from bookshelf.services.pipeline import Abort, Continue, ImportRowError, PhaseResult

__all__ = [
    "auth_service",
    "book_service",
    "export_service",
    "import_service",
    "job_tracker",
    "DuplicateResolver",
    "DuplicateStrategy",
    "resolve_duplicates",
    "bulk_create_books",
    "ensure_genres",
    "BookCandidate",
    "BookCSVParser",
    "parse_book_csv",
    "enrich_candidates",
    "BulkImportError",
    "DuplicateConflictError",
    "ImportFailedError",
    "JobFinalizedError",
    "PersistenceError",
    "BookMetadata",
    "MetadataEnricher",
    "OpenLibraryClient",
    "ImportOptions",
    "process_bulk_import",
    "Abort",
    "Continue",
    "ImportRowError",
    "PhaseResult",
]
