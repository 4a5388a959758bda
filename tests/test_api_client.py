"""Tests for the gallery HTTP client."""

import asyncio
import json

import httpx
import pytest

from guest_gallery.adapters.gallery_api_client import HttpxGalleryClient, MultipartBody
from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import FaceDetection, PhotoTag
from guest_gallery.errors import (
    HttpError,
    NetworkError,
    RequestTimeoutError,
    SerializationError,
)

PHOTO_JSON = {
    "id": "p1",
    "url": "/uploads/p1.jpg",
    "tag": "wedding",
    "filename": "p1.jpg",
    "originalName": "IMG_0001.jpg",
    "photographer": "Robin",
    "size": 1234,
    "mimetype": "image/jpeg",
    "uploadedAt": "2026-06-01T12:00:00Z",
    "people": ["Alice"],
    "faces": [{"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.3, "confidence": 0.9}],
}


def _client(handler, token: str | None = "guest-token", **kwargs) -> HttpxGalleryClient:
    return HttpxGalleryClient(
        base_url="https://gallery.test/",
        access_token=token,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def test_request_sends_token_in_query_and_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    client = _client(handler)
    result = asyncio.run(
        client.request("POST", "/api/things", params={"page": 2, "skip": None}, body={"a": 1})
    )

    request = seen[0]
    assert result == {"ok": True}
    assert request.url.path == "/api/things"
    assert request.url.params["token"] == "guest-token"
    assert request.url.params["page"] == "2"
    assert "skip" not in request.url.params
    assert request.headers["x-access-token"] == "guest-token"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"a": 1}


def test_request_without_token_omits_credentials() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    client = _client(handler, token=None)
    asyncio.run(client.get("/api/photos"))

    assert "token" not in seen[0].url.params
    assert "x-access-token" not in seen[0].headers


def test_get_ignores_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = _client(handler)
    asyncio.run(client.request("GET", "/health", body={"ignored": True}))

    assert seen[0].content == b""


def test_upload_photo_sends_multipart_with_own_boundary() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "photo": PHOTO_JSON})

    client = _client(handler)
    file = MediaFile(filename="IMG_0001.jpg", content_type="image/jpeg", data=b"jpeg-bytes")

    photo = asyncio.run(client.upload_photo(file, PhotoTag.WEDDING, "Robin"))

    request = seen[0]
    body = request.read()
    assert request.method == "POST"
    assert request.url.path == "/api/upload"
    assert request.headers["content-type"].startswith("multipart/form-data; boundary=")
    assert b'name="photo"; filename="IMG_0001.jpg"' in body
    assert b'name="tag"' in body and b"wedding" in body
    assert b'name="photographer"' in body and b"Robin" in body
    assert b"jpeg-bytes" in body
    assert photo.id == "p1"
    assert photo.uploader_name == "Robin"
    assert photo.original_name == "IMG_0001.jpg"
    assert photo.faces[0].confidence == pytest.approx(0.9)


def test_upload_photo_accepts_bare_photo_and_skips_empty_uploader() -> None:
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.read())
        return httpx.Response(201, json=PHOTO_JSON)

    client = _client(handler)
    file = MediaFile(filename="a.png", content_type="image/png", data=b"png")

    photo = asyncio.run(client.upload_photo(file, PhotoTag.OTHER))

    assert photo.id == "p1"
    assert b'name="photographer"' not in seen[0]


def test_http_error_carries_status_and_json_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(413, json={"error": "File too large"})

    client = _client(handler)
    with pytest.raises(HttpError) as exc_info:
        asyncio.run(client.get("/api/photos"))

    assert exc_info.value.status == 413
    assert exc_info.value.body == {"error": "File too large"}
    assert str(exc_info.value) == "File too large"


def test_http_error_wraps_plain_text_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad Gateway")

    client = _client(handler)
    with pytest.raises(HttpError) as exc_info:
        asyncio.run(client.get("/api/photos"))

    assert exc_info.value.status == 502
    assert exc_info.value.body == {"error": "Bad Gateway"}


def test_http_error_with_empty_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    client = _client(handler)
    with pytest.raises(HttpError) as exc_info:
        asyncio.run(client.delete_photo("p1"))

    assert exc_info.value.body == {"error": "Unknown error"}


def test_timeout_abandons_request() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    client = _client(handler, timeout_ms=20)
    with pytest.raises(RequestTimeoutError) as exc_info:
        asyncio.run(client.get_photos())

    assert isinstance(exc_info.value, NetworkError)


def test_transport_failure_raises_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(NetworkError, match="connection refused"):
        asyncio.run(client.get_photos())


def test_unparseable_success_body_raises_serialization_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    client = _client(handler)
    with pytest.raises(SerializationError):
        asyncio.run(client.get_photos())


def test_invalid_photo_payload_raises_serialization_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"url": "/missing-id.jpg"}])

    client = _client(handler)
    with pytest.raises(SerializationError):
        asyncio.run(client.get_photos())


def test_empty_success_body_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client = _client(handler)

    assert asyncio.run(client.delete("/api/photos/p1")) is None


@pytest.mark.parametrize("payload", [[PHOTO_JSON], {"photos": [PHOTO_JSON]}])
def test_get_photos_accepts_array_or_wrapper(payload: object) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/photos"
        return httpx.Response(200, json=payload)

    client = _client(handler)
    photos = asyncio.run(client.get_photos())

    assert [photo.id for photo in photos] == ["p1"]
    assert photos[0].tag is PhotoTag.WEDDING


def test_update_photo_people_patches_people_and_faces() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={**PHOTO_JSON, "people": ["Alice", "Bob"]})

    client = _client(handler)
    face = FaceDetection(x=0.1, y=0.1, width=0.2, height=0.2, confidence=0.8, person_name="Bob")

    photo = asyncio.run(client.update_photo_people("p1", ["Alice", "Bob"], [face]))

    request = seen[0]
    payload = json.loads(request.content)
    assert request.method == "PATCH"
    assert request.url.path == "/api/photos/p1/people"
    assert payload["people"] == ["Alice", "Bob"]
    assert payload["faces"][0]["personName"] == "Bob"
    assert photo.people == ["Alice", "Bob"]


def test_update_photo_people_without_faces() -> None:
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=PHOTO_JSON)

    client = _client(handler)
    asyncio.run(client.update_photo_people("p1", ["Alice"]))

    assert seen == [{"people": ["Alice"]}]


def test_initialize_survives_failed_health_check() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/health"
        return httpx.Response(503, json={"error": "starting"})

    client = _client(handler)
    asyncio.run(client.initialize())

    assert client.initialized is True
    assert client.status()["has_token"] is True


def test_get_stats_and_token_update() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"totalPhotos": 3})

    client = _client(handler, token=None)
    client.set_access_token("new-token")

    stats = asyncio.run(client.get_stats())

    assert stats == {"totalPhotos": 3}
    assert seen[0].url.params["token"] == "new-token"
    asyncio.run(client.close())


def test_multipart_body_drops_caller_content_type_in_any_case() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    client = _client(handler)
    body = MultipartBody(
        fields={"tag": "other"},
        files={"photo": ("a.jpg", b"jpeg-bytes", "image/jpeg")},
    )
    asyncio.run(
        client.request(
            "POST", "/api/upload", headers={"content-type": "application/json"}, body=body
        )
    )

    content_types = seen[0].headers.get_list("content-type")
    assert len(content_types) == 1
    assert content_types[0].startswith("multipart/form-data; boundary=")
