try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from app.core.errors import (
    IntegrationAPIError,
    NotConnectedError,
    RefreshFailedError,
    UnauthorizedError,
)
from app.main import app
from app.schemas import CaseSummary, DriveFile, DriveFolder
from app.services.drive_upload import DriveUploadService

pytestmark = pytest.mark.anyio("asyncio")

USER_HEADER = {"X-Authenticated-User": "paralegal-7"}


class StubMyCaseClient:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.queries: list[str] = []

    async def list_clients(self):
        if self.error:
            raise self.error
        return [
            CaseSummary(id=2, name="Ana Diaz", case_number="A-2", updated_at="2024-05-01"),
            CaseSummary(id=1, name="Unknown Client", case_number="No Case Number"),
        ]

    async def search_clients(self, query: str):
        self.queries.append(query)
        if self.error:
            raise self.error
        return [CaseSummary(id=2, name="Ana Diaz", case_number="A-2")]


class StubDriveClient:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.uploads: list[dict] = []
        self.listed: list[tuple[str, str]] = []

    async def list_folders(self, *, user_id: str, parent_id: str = "root"):
        self.listed.append((user_id, parent_id))
        if self.error:
            raise self.error
        return [DriveFolder(id="f1", name="Evidence")]

    async def upload_file(self, **kwargs):
        self.uploads.append(kwargs)
        if self.error:
            raise self.error
        return DriveFile(
            id="file-1",
            name=kwargs["file_name"],
            web_view_link="https://drive.google.com/file/d/file-1/view",
            mime_type=kwargs["mime_type"],
        )


@pytest.fixture()
def overrides():
    from app import dependencies

    mycase = StubMyCaseClient()
    drive = StubDriveClient()
    upload_service = DriveUploadService(drive, max_bytes=16)

    app.dependency_overrides.clear()
    app.dependency_overrides.update(
        {
            dependencies.get_mycase_client: lambda: mycase,
            dependencies.get_drive_client: lambda: drive,
            dependencies.get_drive_upload_service: lambda: upload_service,
        }
    )

    yield mycase, drive

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


async def test_health() -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.json() == {"status": "ok"}


async def test_list_mycase_clients(overrides) -> None:
    async with _client() as client:
        response = await client.get("/api/mycase/clients", headers=USER_HEADER)

    assert response.status_code == 200
    clients = response.json()["clients"]
    assert [item["id"] for item in clients] == [2, 1]
    assert clients[1]["name"] == "Unknown Client"


async def test_domain_routes_require_session(overrides) -> None:
    async with _client() as client:
        response = await client.get("/api/mycase/clients")

    assert response.status_code == 401


async def test_search_clients_passes_query(overrides) -> None:
    mycase, _ = overrides
    async with _client() as client:
        response = await client.get(
            "/api/mycase/search-clients", params={"query": "Ana Diaz"}, headers=USER_HEADER
        )

    assert response.status_code == 200
    assert mycase.queries == ["Ana Diaz"]
    assert response.json()["clients"][0]["name"] == "Ana Diaz"


async def test_blank_search_returns_empty_without_upstream_call(overrides) -> None:
    mycase, _ = overrides
    async with _client() as client:
        response = await client.get(
            "/api/mycase/search-clients", params={"query": "  "}, headers=USER_HEADER
        )

    assert response.json() == {"clients": []}
    assert mycase.queries == []


async def test_not_connected_asks_for_authorization(overrides) -> None:
    mycase, _ = overrides
    mycase.error = NotConnectedError("MyCase is not connected.", integration="mycase")

    async with _client() as client:
        response = await client.get("/api/mycase/clients", headers=USER_HEADER)

    assert response.status_code == 401
    body = response.json()
    assert body["reason"] == "not_connected"
    assert body["needs_oauth"] is True
    assert body["oauth_url"] == "/api/auth/mycase/authorize"


async def test_refresh_failure_asks_for_reauthorization(overrides) -> None:
    mycase, _ = overrides
    mycase.error = RefreshFailedError(
        "MyCase refresh failed.", integration="mycase", detail="invalid_grant"
    )

    async with _client() as client:
        response = await client.get("/api/mycase/clients", headers=USER_HEADER)

    assert response.status_code == 401
    assert response.json()["reason"] == "reauthorize"
    assert response.json()["needs_oauth"] is True


async def test_upstream_rejection_asks_for_reauthorization(overrides) -> None:
    _, drive = overrides
    drive.error = UnauthorizedError("Drive rejected the token.", integration="google")

    async with _client() as client:
        response = await client.get("/api/google/drive/folders", headers=USER_HEADER)

    assert response.status_code == 401
    assert response.json()["oauth_url"] == "/api/auth/google/authorize"


async def test_upstream_failure_is_bad_gateway(overrides) -> None:
    mycase, _ = overrides
    mycase.error = IntegrationAPIError(
        "MyCase API error: 503", integration="mycase", upstream_status=503
    )

    async with _client() as client:
        response = await client.get(
            "/api/mycase/search-clients", params={"query": "Ana"}, headers=USER_HEADER
        )

    assert response.status_code == 502
    body = response.json()
    assert body["reason"] == "upstream_error"
    assert "needs_oauth" not in body


async def test_list_drive_folders_uses_caller_identity(overrides) -> None:
    _, drive = overrides
    async with _client() as client:
        response = await client.get(
            "/api/google/drive/folders", params={"parent": "p-1"}, headers=USER_HEADER
        )

    assert response.status_code == 200
    assert response.json()["parent_id"] == "p-1"
    assert response.json()["folders"][0]["name"] == "Evidence"
    assert drive.listed == [("paralegal-7", "p-1")]


async def test_upload_to_drive(overrides) -> None:
    _, drive = overrides
    async with _client() as client:
        response = await client.post(
            "/api/google/drive/upload",
            files={"file": ("scan-0001.pdf", b"%PDF-1.4", "application/pdf")},
            data={"folderId": "case-folder", "fileName": "i94.pdf"},
            headers=USER_HEADER,
        )

    assert response.status_code == 201
    assert response.json()["success"] is True
    assert response.json()["file"]["id"] == "file-1"
    upload = drive.uploads[0]
    assert upload["user_id"] == "paralegal-7"
    assert upload["file_name"] == "i94.pdf"
    assert upload["mime_type"] == "application/pdf"
    assert upload["content"] == b"%PDF-1.4"
    assert upload["folder_id"] == "case-folder"


async def test_upload_defaults_to_uploaded_name_and_root_folder(overrides) -> None:
    _, drive = overrides
    async with _client() as client:
        response = await client.post(
            "/api/google/drive/upload",
            files={"file": ("passport.jpg", b"jpeg-bytes", "image/jpeg")},
            headers=USER_HEADER,
        )

    assert response.status_code == 201
    upload = drive.uploads[0]
    assert upload["file_name"] == "passport.jpg"
    assert upload["folder_id"] is None


@pytest.mark.parametrize("content", [b"", b"x" * 17])
async def test_upload_rejects_empty_or_oversized_files(overrides, content) -> None:
    _, drive = overrides
    async with _client() as client:
        response = await client.post(
            "/api/google/drive/upload",
            files={"file": ("a.txt", content, "text/plain")},
            headers=USER_HEADER,
        )

    assert response.status_code == 400
    assert drive.uploads == []


async def test_upload_without_file_is_rejected(overrides) -> None:
    _, drive = overrides
    async with _client() as client:
        response = await client.post(
            "/api/google/drive/upload",
            data={"folderId": "case-folder"},
            headers=USER_HEADER,
        )

    assert response.status_code == 422
    assert drive.uploads == []
