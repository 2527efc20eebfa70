import hashlib
import os
import time

import pytest
from fastapi.testclient import TestClient

from main import create_app

JSON = {"Accept": "application/json"}


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def upload(client, content=b"0123456789", name="data.bin", content_type="application/octet-stream",
           **form):
    response = client.post(
        "/upload",
        files={"file": (name, content, content_type)},
        data={k: str(v) for k, v in form.items()},
        headers=JSON,
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_upload_and_download(client):
    content = os.urandom(4096)
    data = upload(client, content, name="report final.pdf", content_type="application/pdf")

    assert data["original_name"] == "report final.pdf"
    assert data["filename"] == f"{data['id']}_report_final.pdf"
    assert data["size"] == 4096
    assert data["checksum"] == hashlib.sha256(content).hexdigest()
    assert data["download_url"].endswith(f"/download/{data['id']}")

    response = client.get(f"/download/{data['id']}")
    assert response.status_code == 200
    assert response.content == content
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["x-checksum"] == data["checksum"]
    assert response.headers["content-disposition"] == 'attachment; filename="report final.pdf"'


def test_upload_plain_text_response(client):
    response = client.post("/upload", files={"file": ("a.txt", b"hi", "text/plain")})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "File uploaded successfully!" in response.text
    assert "Download URL: http://testserver/download/" in response.text
    assert "Checksum: " + hashlib.sha256(b"hi").hexdigest() in response.text


def test_api_upload_alias(client):
    response = client.post("/api/upload", files={"file": ("a.txt", b"hi", "text/plain")},
                           headers=JSON)
    assert response.status_code == 200
    assert response.json()["size"] == 2


def test_upload_without_file(client):
    response = client.post("/upload", data={"ttl": "10"}, headers=JSON)
    assert response.status_code == 422


def test_upload_invalid_ttl(client):
    response = client.post("/upload", files={"file": ("a.txt", b"hi")},
                           data={"ttl": "0"}, headers=JSON)
    assert response.status_code == 400
    assert "TTL" in response.json()["detail"]


def test_download_expires_after_ttl(client):
    data = upload(client, b"ten bytes!", ttl=1)
    assert client.get(f"/download/{data['id']}").status_code == 200

    time.sleep(2)

    response = client.get(f"/download/{data['id']}")
    assert response.status_code == 410
    assert response.json()["detail"] == "File expired"
    # The lazy eviction removed it for good
    assert client.get(f"/info/{data['id']}").status_code == 404
    assert client.get("/api/files").json()["total"] == 0


def test_download_limit_reached(client):
    data = upload(client, b"once only", max_downloads=1)

    first = client.get(f"/download/{data['id']}")
    assert first.status_code == 200
    assert first.content == b"once only"

    second = client.get(f"/download/{data['id']}")
    assert second.status_code == 403
    assert second.json()["detail"] == "Download limit reached"


def test_password_protected_download(client):
    data = upload(client, b"secret", password="abc")

    assert client.get(f"/download/{data['id']}").status_code == 401
    assert client.get(f"/download/{data['id']}", params={"password": "nope"}).status_code == 401

    response = client.get(f"/download/{data['id']}", params={"password": "abc"})
    assert response.status_code == 200
    assert response.content == b"secret"


def test_download_unknown_id(client):
    response = client.get("/download/doesnotexist")
    assert response.status_code == 404
    assert response.json()["detail"] == "File not found"


def test_info_hides_password(client):
    data = upload(client, password="abc", description="notes", tags="a, b")
    response = client.get(f"/info/{data['id']}")
    assert response.status_code == 200

    info = response.json()
    assert "password" not in info
    assert "path" not in info
    assert info["password_protected"] is True
    assert info["description"] == "notes"
    assert info["tags"] == ["a", "b"]
    assert info["downloads"] == 0
    assert info["uploader_ip"] == "testclient"


def test_search_by_tag(client):
    work = upload(client, name="plan.txt", tags="Work,urgent")
    other = upload(client, name="work-notes.txt", tags="home")
    also_work = upload(client, name="list.txt", tags="WORK")

    response = client.get("/search", params={"tag": "work"})
    assert response.status_code == 200
    assert {f["id"] for f in response.json()} == {work["id"], also_work["id"]}

    response = client.get("/search", params={"tag": "work", "q": "plan"})
    assert [f["id"] for f in response.json()] == [work["id"]]

    response = client.get("/search", params={"q": "NOTES"})
    assert [f["id"] for f in response.json()] == [other["id"]]


def test_search_sort_by_size(client):
    small = upload(client, b"x", name="small.txt")
    big = upload(client, b"x" * 100, name="big.txt")
    response = client.get("/search", params={"sort": "size"})
    assert [f["id"] for f in response.json()] == [big["id"], small["id"]]


def test_list_files_paginates(client):
    for i in range(3):
        upload(client, name=f"f{i}.txt")

    response = client.get("/api/files", params={"limit": 2, "offset": 1})
    body = response.json()
    assert body["total"] == 3
    assert body["limit"] == 2
    assert body["offset"] == 1
    assert len(body["files"]) == 2

    body = client.get("/api/files", params={"limit": 100000}).json()
    assert body["limit"] == 1000


def test_index_redirects_to_listing(client):
    response = client.get("/", follow_redirects=False)
    assert response.status_code in (302, 307)
    assert response.headers["location"] == "/api/files"


def test_stats(client):
    upload(client, b"12345")
    data = upload(client, b"1234567890")
    client.get(f"/download/{data['id']}")

    stats = client.get("/stats").json()
    assert stats == {"total_files": 2, "total_size": 15, "total_downloads": 1, "active_files": 2}


def test_delete_is_idempotent(client):
    data = upload(client)

    response = client.delete(f"/delete/{data['id']}")
    assert response.status_code == 200
    assert response.json() == {"status": "deleted", "id": data["id"]}
    assert client.get(f"/download/{data['id']}").status_code == 404

    response = client.delete(f"/delete/{data['id']}")
    assert response.status_code == 200
    assert response.json()["status"] == "not_found"


def test_bulk_delete(client):
    first = upload(client)
    second = upload(client)
    kept = upload(client)

    response = client.post("/bulk-delete",
                           json={"file_ids": [first["id"], second["id"], "missing"]})
    assert response.status_code == 200
    assert response.json() == {"deleted": 2, "total": 3}
    assert [f["id"] for f in client.get("/api/files").json()["files"]] == [kept["id"]]


def test_bulk_delete_rejects_bad_body(client):
    assert client.post("/bulk-delete", json={"ids": []}).status_code == 422
    assert client.post("/bulk-delete", json={"file_ids": [""]}).status_code == 422


def test_health(client):
    upload(client)
    health = client.get("/api/health").json()
    assert health["status"] == "healthy"
    assert health["file_count"] == 1
    assert health["uptime_seconds"] >= 0
    assert "timestamp" in health


def test_oversized_upload_rejected(settings):
    settings.max_file_size = 8
    with TestClient(create_app(settings)) as client:
        response = client.post("/upload", files={"file": ("big.bin", b"x" * 64)}, headers=JSON)
        assert response.status_code == 413
        assert client.get("/stats").json()["total_files"] == 0


def test_disallowed_content_type_rejected(settings):
    settings.allowed_types = ["image/"]
    with TestClient(create_app(settings)) as client:
        response = client.post("/upload", files={"file": ("run.exe", b"MZ", "application/x-msdownload")},
                               headers=JSON)
        assert response.status_code == 400
        assert response.json()["detail"] == "File type not allowed"

        upload(client, b"\x89PNG", name="pic.png", content_type="image/png")


def test_files_survive_restart(settings):
    with TestClient(create_app(settings)) as client:
        data = upload(client, b"durable", tags="keep")
        client.get(f"/download/{data['id']}")

    with TestClient(create_app(settings)) as client:
        info = client.get(f"/info/{data['id']}").json()
        assert info["downloads"] == 1
        assert info["tags"] == ["keep"]
        assert client.get(f"/download/{data['id']}").content == b"durable"
