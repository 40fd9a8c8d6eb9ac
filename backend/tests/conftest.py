"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Must be set before bookshelf is imported: settings and the engine are module level
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["IMPORT_ENRICHMENT_ENABLED"] = "false"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import asyncio  # noqa: E402
from io import BytesIO  # noqa: E402
from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bookshelf.core.database import Base, get_db  # noqa: E402
from bookshelf.main import app  # noqa: E402
from bookshelf.models.user import User  # noqa: E402
from bookshelf.services.auth_service import create_access_token  # noqa: E402
from bookshelf.services.book_dedup import DuplicateStrategy  # noqa: E402
from bookshelf.services.import_service import ImportOptions, process_bulk_import  # noqa: E402

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


HEADER = "title,author,genres,publisheddate,rating"

DUNE_CSV = f'{HEADER}\n"Dune","Frank Herbert","Science Fiction","1965-08-01",5\n'.encode()

EMPTY_TITLE_CSV = f'{HEADER}\n"","Frank Herbert","Science Fiction","1965-08-01",5\n'.encode()

LIBRARY_CSV = b"""Title,Author,Genres,PublishedDate,Rating,Edition,ISBN
"The Hobbit","J.R.R. Tolkien","Fantasy,Classic","1937-09-21",5,"First Edition","978-0547928227"
"Neuromancer","William Gibson","Science Fiction,Cyberpunk","1984-07-01",4,,
"Pride and Prejudice","Jane Austen","Romance, Classic","1813-01-28",4,,
"""


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user."""
    user = User(email="reader@example.com", username="reader")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db: Session) -> User:
    """A second user whose library must stay separate."""
    user = User(email="other@example.com", username="other")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user_token(test_user: User) -> str:
    """Create an access token for the test user."""
    return create_access_token(data={"sub": str(test_user.id)})


@pytest.fixture
def auth_headers(test_user_token: str) -> dict:
    """Create authorization headers."""
    return {"Authorization": f"Bearer {test_user_token}"}


@pytest.fixture
def run_import(db: Session):
    """Run the import pipeline synchronously and return the finalized job."""

    def _run(
        content: bytes,
        user: User,
        strategy: DuplicateStrategy = DuplicateStrategy.SKIP,
        file_name: str = "books.csv",
        **option_overrides,
    ):
        options = ImportOptions(
            duplicate_strategy=strategy,
            enrich=option_overrides.pop("enrich", False),
            enrichment_batch_delay=option_overrides.pop("enrichment_batch_delay", 0.0),
            **option_overrides,
        )
        return asyncio.run(
            process_bulk_import(db, BytesIO(content), file_name, user.id, options)
        )

    return _run


@pytest.fixture
def dune_csv() -> bytes:
    return DUNE_CSV


@pytest.fixture
def empty_title_csv() -> bytes:
    return EMPTY_TITLE_CSV


@pytest.fixture
def library_csv() -> bytes:
    """Three valid books using every import column."""
    return LIBRARY_CSV
