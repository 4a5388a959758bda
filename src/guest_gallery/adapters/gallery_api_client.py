"""HTTP client for the gallery API."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import FaceDetection, Photo, PhotoTag
from guest_gallery.errors import (
    ApiError,
    HttpError,
    NetworkError,
    RequestTimeoutError,
    SerializationError,
)

_logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class GalleryApi(Protocol):
    """Interface for the remote gallery service."""

    async def get_photos(self) -> list[Photo]:
        """Return every photo known to the server."""

    async def upload_photo(
        self, file: MediaFile, tag: PhotoTag, uploader_name: str | None = None
    ) -> Photo:
        """Upload one image and return the stored photo."""

    async def update_photo_people(
        self,
        photo_id: str,
        people: list[str],
        faces: list[FaceDetection] | None = None,
    ) -> Photo:
        """Replace the tagged people (and faces) of a photo."""

    async def delete_photo(self, photo_id: str) -> None:
        """Delete a photo."""


@dataclass(frozen=True)
class GalleryEndpoints:
    """Paths of the gallery API routes."""

    photos: str = "/api/photos"
    upload: str = "/api/upload"
    people: str = "/api/photos/{photo_id}/people"
    stats: str = "/api/stats"
    health: str = "/health"


@dataclass(frozen=True)
class MultipartBody:
    """Form fields and files sent as multipart/form-data."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, tuple[str, bytes, str]] = field(default_factory=dict)


@dataclass
class HttpxGalleryClient(GalleryApi):
    """Gallery API client using httpx."""

    base_url: str
    access_token: str | None
    http_client: httpx.AsyncClient
    endpoints: GalleryEndpoints = field(default_factory=GalleryEndpoints)
    timeout_ms: int = 30_000
    initialized: bool = False

    @classmethod
    def create(
        cls,
        base_url: str,
        access_token: str | None,
        endpoints: GalleryEndpoints | None = None,
        timeout_ms: int = 30_000,
    ) -> "HttpxGalleryClient":
        """Create a gallery client with a managed httpx session."""
        return cls(
            base_url=base_url,
            access_token=access_token,
            http_client=httpx.AsyncClient(),
            endpoints=endpoints or GalleryEndpoints(),
            timeout_ms=timeout_ms,
        )

    async def initialize(self) -> None:
        """Probe the health endpoint; a failed probe is logged, not raised."""
        try:
            await self.health_check()
            _logger.info("Gallery API reachable at %s", self.base_url)
        except ApiError as exc:
            _logger.warning("Gallery API health check failed, continuing: %s", exc)
        self.initialized = True

    def status(self) -> dict[str, object]:
        return {
            "initialized": self.initialized,
            "has_token": bool(self.access_token),
            "base_url": self.base_url,
        }

    def set_access_token(self, token: str | None) -> None:
        self.access_token = token
        _logger.info("Access token updated")

    async def request(  # noqa: PLR0913
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, object] | None = None,
        headers: dict[str, str] | None = None,
        body: object = None,
        timeout_ms: int | None = None,
    ) -> object:
        """Send a request and return the decoded JSON body.

        Raises NetworkError (RequestTimeoutError when the deadline passes),
        HttpError for non-2xx answers and SerializationError when a
        successful body is not JSON.
        """
        method = method.upper()
        request_headers = httpx.Headers(DEFAULT_HEADERS)
        request_headers.update(headers or {})
        if self.access_token:
            request_headers["x-access-token"] = self.access_token

        payload: dict[str, object] = {}
        if body is not None and method != "GET":
            if isinstance(body, MultipartBody):
                request_headers.pop("Content-Type", None)
                payload["data"] = body.fields
                payload["files"] = body.files
            else:
                payload["content"] = json.dumps(body).encode("utf-8")

        deadline_ms = timeout_ms if timeout_ms is not None else self.timeout_ms
        deadline = deadline_ms / 1000
        url = self._build_url(endpoint)
        _logger.debug("API request: %s %s", method, endpoint)
        try:
            response = await asyncio.wait_for(
                self.http_client.request(
                    method,
                    url,
                    params=self._build_params(params),
                    headers=request_headers,
                    timeout=deadline,
                    **payload,
                ),
                timeout=deadline,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise RequestTimeoutError(
                f"{method} {endpoint} timed out after {deadline_ms}ms"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {endpoint} failed: {exc}") from exc

        _logger.debug("API response: %s %s -> %s", method, endpoint, response.status_code)
        if not response.is_success:
            raise HttpError(response.status_code, _error_body(response.text))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise SerializationError(
                f"{method} {endpoint} returned a non-JSON body"
            ) from exc

    async def get(
        self, endpoint: str, params: dict[str, object] | None = None
    ) -> object:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: object = None) -> object:
        return await self.request("POST", endpoint, body=body)

    async def patch(self, endpoint: str, body: object = None) -> object:
        return await self.request("PATCH", endpoint, body=body)

    async def delete(self, endpoint: str) -> object:
        return await self.request("DELETE", endpoint)

    async def get_photos(self) -> list[Photo]:
        """Fetch all photos."""
        data = await self.get(self.endpoints.photos)
        if isinstance(data, dict) and isinstance(data.get("photos"), list):
            data = data["photos"]
        if not isinstance(data, list):
            raise SerializationError("Photo list response is not an array")
        return [_parse_photo(item) for item in data]

    async def upload_photo(
        self, file: MediaFile, tag: PhotoTag, uploader_name: str | None = None
    ) -> Photo:
        """Upload a photo as multipart form data."""
        fields = {"tag": str(tag)}
        if uploader_name:
            fields["photographer"] = uploader_name
        body = MultipartBody(
            fields=fields,
            files={
                "photo": (
                    file.filename,
                    file.data,
                    file.content_type or "application/octet-stream",
                )
            },
        )
        data = await self.post(self.endpoints.upload, body)
        if isinstance(data, dict) and isinstance(data.get("photo"), dict):
            data = data["photo"]
        return _parse_photo(data)

    async def update_photo_people(
        self,
        photo_id: str,
        people: list[str],
        faces: list[FaceDetection] | None = None,
    ) -> Photo:
        """Replace the people (and optionally the faces) of a photo."""
        body: dict[str, object] = {"people": people}
        if faces is not None:
            body["faces"] = [
                face.model_dump(by_alias=True, exclude_none=True) for face in faces
            ]
        endpoint = self.endpoints.people.format(photo_id=quote(photo_id, safe=""))
        data = await self.patch(endpoint, body)
        return _parse_photo(data)

    async def delete_photo(self, photo_id: str) -> None:
        """Delete a photo."""
        await self.delete(f"{self.endpoints.photos}/{quote(photo_id, safe='')}")

    async def get_stats(self) -> dict[str, object]:
        """Fetch gallery statistics computed by the server."""
        data = await self.get(self.endpoints.stats)
        if not isinstance(data, dict):
            raise SerializationError("Stats response is not an object")
        return data

    async def health_check(self) -> dict[str, object]:
        """Call the liveness endpoint."""
        data = await self.get(self.endpoints.health)
        return data if isinstance(data, dict) else {}

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _build_params(self, params: dict[str, object] | None) -> dict[str, str]:
        query = {
            key: str(value) for key, value in (params or {}).items() if value is not None
        }
        if self.access_token:
            query["token"] = self.access_token
        return query


def _error_body(text: str) -> dict[str, object]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"error": text or "Unknown error"}
    if isinstance(parsed, dict):
        return parsed
    return {"error": text}


def _parse_photo(data: object) -> Photo:
    try:
        return Photo.model_validate(data)
    except PydanticValidationError as exc:
        raise SerializationError(f"Invalid photo payload: {exc}") from exc
