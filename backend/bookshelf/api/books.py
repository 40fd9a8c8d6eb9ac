from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bookshelf.core.database import get_db
from bookshelf.schemas.book import BookCreate, BookResponse
from bookshelf.services import auth_service, book_service

router = APIRouter()


@router.post("/", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """Add a book to the current user's library."""
    return book_service.create_book(db, current_user.id, book_data)


@router.get("/", response_model=list[BookResponse])
async def list_books(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user=Depends(auth_service.get_current_user),
    db: Session = Depends(get_db),
):
    """List the current user's books, ordered by title."""
    return book_service.list_books(db, current_user.id, limit=limit, offset=offset)
