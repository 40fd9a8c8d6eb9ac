from bookshelf.schemas.auth import TokenPayload
from bookshelf.schemas.book import BookCreate, BookResponse
from bookshelf.schemas.imports import BulkImportResponse, ImportErrorItem

__all__ = [
    "TokenPayload",
    "BookCreate",
    "BookResponse",
    "BulkImportResponse",
    "ImportErrorItem",
]
