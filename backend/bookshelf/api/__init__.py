from fastapi import APIRouter

from bookshelf.api import books, imports

router = APIRouter()

router.include_router(books.router, prefix="/books", tags=["books"])
router.include_router(imports.router, prefix="/imports", tags=["imports"])
