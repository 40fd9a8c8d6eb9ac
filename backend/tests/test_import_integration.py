"""Integration tests for the import API."""

import re
from io import BytesIO

from fastapi.testclient import TestClient

from bookshelf.api import imports as imports_api
from bookshelf.services.auth_service import create_access_token

UPLOAD_URL = "/api/v1/imports/books"


def upload(client: TestClient, content: bytes, headers: dict, **kwargs):
    file_name = kwargs.pop("file_name", "books.csv")
    content_type = kwargs.pop("content_type", "text/csv")
    files = {"file": (file_name, BytesIO(content), content_type)}
    return client.post(UPLOAD_URL, headers=headers, files=files, **kwargs)


class TestCSVImportEndpoint:
    """Test CSV import API endpoint."""

    def test_upload_valid_csv(self, client: TestClient, auth_headers, dune_csv):
        response = upload(client, dune_csv, auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["job_id"]
        assert data["file_name"] == "books.csv"
        assert data["status"] == "Completed"
        assert data["total_rows"] == 1
        assert data["valid_rows"] == 1
        assert data["error_rows"] == 0
        assert data["imported_rows"] == 1
        assert data["error_summary"] is None
        assert data["completed_at"] is not None

    def test_upload_with_row_errors(self, client: TestClient, auth_headers, empty_title_csv):
        response = upload(client, empty_title_csv, auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CompletedWithErrors"
        assert data["error_summary"] == [
            {
                "row_number": 2,
                "field": "Title",
                "message": "Title is required",
                "original_value": "",
            }
        ]

    def test_upload_missing_headers(self, client: TestClient, auth_headers):
        response = upload(client, b"wrong,headers,here\n1,2,3\n", auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Failed"
        assert data["total_rows"] == 0
        assert data["error_summary"][0]["field"] == "Headers"

    def test_upload_empty_file(self, client: TestClient, auth_headers):
        response = upload(client, b"", auth_headers)
        assert response.status_code == 400

    def test_upload_wrong_extension(self, client: TestClient, auth_headers, dune_csv):
        response = upload(client, dune_csv, auth_headers, file_name="books.txt")
        assert response.status_code == 400

    def test_upload_wrong_content_type(self, client: TestClient, auth_headers, dune_csv):
        response = upload(client, dune_csv, auth_headers, content_type="application/pdf")
        assert response.status_code == 400

    def test_upload_too_large(self, client: TestClient, auth_headers, dune_csv, monkeypatch):
        monkeypatch.setattr(imports_api.settings, "IMPORT_MAX_FILE_SIZE_MB", 0)

        response = upload(client, dune_csv, auth_headers)

        assert response.status_code == 413

    def test_upload_unauthenticated(self, client: TestClient, dune_csv):
        response = upload(client, dune_csv, {})
        assert response.status_code == 401

    def test_upload_invalid_token(self, client: TestClient, dune_csv):
        response = upload(client, dune_csv, {"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_token_for_unknown_user(self, client: TestClient, dune_csv):
        token = create_access_token(data={"sub": "9999"})
        response = upload(client, dune_csv, {"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_invalid_duplicate_strategy(self, client: TestClient, auth_headers, dune_csv):
        response = upload(
            client, dune_csv, auth_headers, params={"duplicate_strategy": "merge"}
        )
        assert response.status_code == 422

    def test_duplicate_conflict_returns_409(self, client: TestClient, auth_headers, dune_csv):
        assert upload(client, dune_csv, auth_headers).status_code == 200

        response = upload(client, dune_csv, auth_headers, params={"duplicate_strategy": "fail"})

        assert response.status_code == 409
        data = response.json()
        assert data["status"] == "Failed"
        assert data["imported_rows"] == 0
        assert data["error_summary"][-1]["field"] == "General"

    def test_skip_strategy_reports_skipped(self, client: TestClient, auth_headers, dune_csv):
        upload(client, dune_csv, auth_headers)

        response = upload(client, dune_csv, auth_headers, params={"duplicate_strategy": "skip"})

        data = response.json()
        assert data["status"] == "Completed"
        assert data["imported_rows"] == 0
        assert data["skipped_rows"] == 1


class TestImportJobEndpoints:
    def test_get_job_status(self, client: TestClient, auth_headers, dune_csv):
        job_id = upload(client, dune_csv, auth_headers).json()["job_id"]

        response = client.get(f"/api/v1/imports/jobs/{job_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["job_id"] == job_id
        assert response.json()["status"] == "Completed"

    def test_get_unknown_job(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/imports/jobs/does-not-exist", headers=auth_headers)
        assert response.status_code == 404

    def test_get_other_users_job(self, client: TestClient, auth_headers, other_user, dune_csv):
        job_id = upload(client, dune_csv, auth_headers).json()["job_id"]
        other_token = create_access_token(data={"sub": str(other_user.id)})

        response = client.get(
            f"/api/v1/imports/jobs/{job_id}",
            headers={"Authorization": f"Bearer {other_token}"},
        )

        assert response.status_code == 404

    def test_list_jobs(self, client: TestClient, auth_headers, dune_csv, empty_title_csv):
        upload(client, dune_csv, auth_headers)
        upload(client, empty_title_csv, auth_headers)

        response = client.get("/api/v1/imports/jobs", headers=auth_headers)

        assert response.status_code == 200
        assert len(response.json()) == 2


class TestExportEndpoint:
    def test_export_after_import(self, client: TestClient, auth_headers, library_csv):
        upload(client, library_csv, auth_headers)

        response = client.get("/api/v1/imports/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert re.search(r'filename="library_export_\d{8}_\d{6}\.csv"', disposition)
        lines = response.text.splitlines()
        assert lines[0] == "Title,Author,Genres,PublishedDate,Rating,Edition,ISBN"
        assert len(lines) == 4

    def test_export_empty_library(self, client: TestClient, auth_headers):
        response = client.get("/api/v1/imports/export", headers=auth_headers)

        assert response.status_code == 200
        assert response.text.startswith("# CSV Import Template")

    def test_export_requires_auth(self, client: TestClient):
        assert client.get("/api/v1/imports/export").status_code == 401


class TestBooksEndpoint:
    def test_create_and_list(self, client: TestClient, auth_headers):
        response = client.post(
            "/api/v1/books/",
            headers=auth_headers,
            json={
                "title": "Dune",
                "author": "Frank Herbert",
                "genres": ["Science Fiction", "science fiction"],
                "published_date": "1965-08-01",
                "rating": 5,
            },
        )

        assert response.status_code == 201
        assert response.json()["genres"] == ["Science Fiction"]

        listed = client.get("/api/v1/books/", headers=auth_headers).json()
        assert [b["title"] for b in listed] == ["Dune"]

    def test_create_uses_import_validation(self, client: TestClient, auth_headers):
        response = client.post(
            "/api/v1/books/",
            headers=auth_headers,
            json={
                "title": "",
                "author": "Frank Herbert",
                "genres": ["Science Fiction"],
                "published_date": "1965-08-01",
                "rating": 6,
            },
        )

        assert response.status_code == 422
        messages = [e["msg"] for e in response.json()["detail"]]
        assert "Title is required" in messages
        assert "Rating must be between 1 and 5" in messages

    def test_imported_books_listed(self, client: TestClient, auth_headers, library_csv):
        upload(client, library_csv, auth_headers)

        listed = client.get("/api/v1/books/", headers=auth_headers).json()

        assert [b["title"] for b in listed] == ["Neuromancer", "Pride and Prejudice", "The Hobbit"]


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
