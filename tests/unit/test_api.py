"""
HTTP tests for the upload, object and photo endpoints.

The app runs with the in-memory storage backend. Most tests skip the
signed PUT and write straight into the mock backend; the mock upload
route is exercised on its own.
"""

import pytest
from fastapi.testclient import TestClient

from photovault.config.settings import Settings
from photovault.core.objects.broker import ACL_POLICY_METADATA_KEY
from photovault.core.objects.errors import ObjectStorageError
from photovault.core.objects.models import AclPolicy, Visibility
from photovault.main import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, storage_mock_mode=True)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def backend(client):
    return client.app.state.object_storage.backend


def request_upload(client) -> dict:
    response = client.post(
        "/api/uploads/request-url",
        json={"name": "cat.jpg", "size": 5, "contentType": "image/jpeg"},
    )
    assert response.status_code == 200
    return response.json()


def complete_upload(backend, object_path: str, data: bytes = b"image", policy: AclPolicy | None = None) -> None:
    metadata = {ACL_POLICY_METADATA_KEY: policy.to_json()} if policy else {}
    backend.put_object(
        object_path.removeprefix("/api/objects/"),
        data,
        content_type="image/jpeg",
        metadata=metadata,
    )


# ---------------------------------------------------------------------------
# Upload URL
# ---------------------------------------------------------------------------

class TestRequestUploadUrl:

    def test_returns_signed_url_and_object_path(self, client, backend):
        body = request_upload(client)

        assert body["objectPath"].startswith("/api/objects/uploads/")
        key = backend.verify_upload_url(body["uploadURL"])
        assert body["objectPath"] == f"/api/objects/{key}"
        assert body["metadata"] == {"name": "cat.jpg", "size": 5, "contentType": "image/jpeg"}

    def test_missing_name_is_bad_request(self, client):
        response = client.post("/api/uploads/request-url", json={"size": 5})

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required field: name"

    def test_backend_failure_is_server_error(self, client, backend, monkeypatch):
        async def broken(*args, **kwargs):
            raise ObjectStorageError.transport("bucket unreachable")

        monkeypatch.setattr(backend, "ensure_container", broken)

        response = client.post("/api/uploads/request-url", json={"name": "cat.jpg"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to generate upload URL"


# ---------------------------------------------------------------------------
# Mock Storage Uploads
# ---------------------------------------------------------------------------

class TestMockStorageUpload:

    def test_upload_url_is_served_by_the_app(self, client):
        body = request_upload(client)

        uploaded = client.put(
            body["uploadURL"],
            content=b"kitten",
            headers={"Content-Type": "image/jpeg"},
        )
        assert uploaded.status_code == 200

        created = client.post(
            "/api/photos",
            json={"title": "Cat", "url": body["objectPath"]},
            headers={"X-User-Id": "42"},
        )
        assert created.status_code == 201

        served = client.get(body["objectPath"])
        assert served.status_code == 200
        assert served.content == b"kitten"
        assert served.headers["content-type"] == "image/jpeg"

    def test_tampered_upload_url_is_forbidden(self, client):
        body = request_upload(client)
        tampered = body["uploadURL"].replace("sp=cw", "sp=rcwd")

        response = client.put(tampered, content=b"kitten")

        assert response.status_code == 403
        assert client.get(body["objectPath"]).status_code == 404

    def test_unknown_container_is_404(self, client):
        body = request_upload(client)
        other = body["uploadURL"].replace("/mock-storage/photos/", "/mock-storage/archive/")

        assert client.put(other, content=b"kitten").status_code == 404

    def test_route_absent_outside_mock_mode(self, settings):
        real_settings = settings.model_copy(update={
            "storage_mock_mode": False,
            "storage_account_name": "acct",
            "storage_account_key": "secret",
        })
        app = create_app(real_settings)

        paths = {getattr(route, "path", "") for route in app.routes}
        assert not any(path.startswith("/mock-storage") for path in paths)


# ---------------------------------------------------------------------------
# Object Downloads
# ---------------------------------------------------------------------------

class TestServeObject:

    def test_unknown_object_is_404(self, client):
        response = client.get("/api/objects/doesnotexist", headers={"X-User-Id": "1"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Object not found"

    def test_public_object_served_to_anonymous(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, b"hello", AclPolicy("42", Visibility.PUBLIC))

        response = client.get(path)

        assert response.status_code == 200
        assert response.content == b"hello"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["content-length"] == "5"
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_private_object_denied_to_other_user(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, policy=AclPolicy("42", Visibility.PRIVATE))

        response = client.get(path, headers={"X-User-Id": "43"})

        assert response.status_code == 403
        assert response.json()["detail"] == "Access denied"
        assert backend.streams_opened == 0

    def test_private_object_denied_to_anonymous(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, policy=AclPolicy("42", Visibility.PRIVATE))

        assert client.get(path).status_code == 403

    def test_private_object_served_to_owner(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, b"mine", AclPolicy("42", Visibility.PRIVATE))

        response = client.get(path, headers={"X-User-Id": "42"})

        assert response.status_code == 200
        assert response.content == b"mine"
        assert response.headers["cache-control"] == "private, max-age=3600"

    def test_missing_stream_is_500(self, client, backend, monkeypatch):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path)

        async def no_stream(key, chunk_size):
            return None

        monkeypatch.setattr(backend, "open_stream", no_stream)

        response = client.get(path)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to serve object"


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------

class TestPhotos:

    def test_create_requires_login(self, client):
        response = client.post("/api/photos", json={"title": "Cat", "url": "/api/objects/uploads/x"})
        assert response.status_code == 401

    def test_create_makes_image_public_and_owned(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, b"cat")

        response = client.post(
            "/api/photos",
            json={"title": "Cat", "url": path},
            headers={"X-User-Id": "42"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["url"] == path
        assert body["userId"] == "42"

        served = client.get(path)
        assert served.status_code == 200
        assert served.headers["cache-control"] == "public, max-age=3600"

    def test_create_normalizes_raw_storage_url(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path)
        raw_url = backend.public_base_url + path.removeprefix("/api/objects/")

        response = client.post(
            "/api/photos",
            json={"title": "Cat", "url": raw_url},
            headers={"X-User-Id": "42"},
        )

        assert response.status_code == 201
        assert response.json()["url"] == path

    def test_create_with_external_url_skips_policy(self, client):
        response = client.post(
            "/api/photos",
            json={"title": "Cat", "url": "https://images.example.com/cat.jpg"},
            headers={"X-User-Id": "42"},
        )

        assert response.status_code == 201
        assert response.json()["url"] == "https://images.example.com/cat.jpg"

    def test_create_cannot_claim_another_users_image(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path, b"secret", AclPolicy("1", Visibility.PRIVATE))

        response = client.post(
            "/api/photos",
            json={"title": "Mine now", "url": path},
            headers={"X-User-Id": "2"},
        )

        assert response.status_code == 403
        assert client.get(path).status_code == 403
        assert client.get(path, headers={"X-User-Id": "2"}).status_code == 403
        assert client.get(path, headers={"X-User-Id": "1"}).content == b"secret"

    def test_create_survives_missing_upload(self, client):
        """A policy that can't be attached is logged, not fatal."""
        response = client.post(
            "/api/photos",
            json={"title": "Cat", "url": "/api/objects/uploads/never-uploaded"},
            headers={"X-User-Id": "42"},
        )

        assert response.status_code == 201

    def test_get_photo(self, client):
        created = client.post(
            "/api/photos",
            json={"title": "Cat", "url": "https://images.example.com/cat.jpg"},
            headers={"X-User-Id": "42"},
        ).json()

        response = client.get(f"/api/photos/{created['id']}")

        assert response.status_code == 200
        assert response.json()["title"] == "Cat"
        assert client.get("/api/photos/9999").status_code == 404

    def test_delete_is_owner_only_and_removes_image(self, client, backend):
        path = request_upload(client)["objectPath"]
        complete_upload(backend, path)
        photo = client.post(
            "/api/photos",
            json={"title": "Cat", "url": path},
            headers={"X-User-Id": "42"},
        ).json()

        denied = client.delete(f"/api/photos/{photo['id']}", headers={"X-User-Id": "43"})
        assert denied.status_code == 403

        deleted = client.delete(f"/api/photos/{photo['id']}", headers={"X-User-Id": "42"})
        assert deleted.status_code == 204
        assert client.get(path).status_code == 404
        assert client.get(f"/api/photos/{photo['id']}").status_code == 404


# ---------------------------------------------------------------------------
# Startup and health
# ---------------------------------------------------------------------------

class TestStartup:

    def test_missing_credentials_abort_startup(self):
        settings = Settings(
            _env_file=None,
            storage_mock_mode=False,
            storage_account_name="",
            storage_account_key="",
        )
        app = create_app(settings)

        with pytest.raises(ObjectStorageError):
            with TestClient(app):
                pass

    def test_health_and_readiness(self, client):
        assert client.get("/health").json()["status"] == "ok"

        ready = client.get("/health/ready")
        assert ready.status_code == 200
        assert ready.json()["status"] == "ready"
