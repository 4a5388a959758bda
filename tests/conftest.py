"""Shared test fixtures."""

import asyncio
import io
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest
from PIL import Image
from pillow_heif import register_heif_opener

from guest_gallery.adapters.gallery_api_client import GalleryApi
from guest_gallery.config import Settings
from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import FaceDetection, Photo, PhotoTag
from guest_gallery.errors import HttpError, NetworkError
from guest_gallery.services.catalog import PhotoCatalog
from guest_gallery.services.faces import FaceDetector
from guest_gallery.services.preprocessor import MediaPreprocessor
from guest_gallery.services.store import Store
from guest_gallery.services.uploads import UploadLimits, UploadPipeline


@dataclass
class FakeGalleryApi(GalleryApi):
    """In-memory gallery server that records uploads."""

    photos: list[Photo] = field(default_factory=list)
    uploads: list[tuple[MediaFile, PhotoTag, str | None]] = field(default_factory=list)
    started: list[str] = field(default_factory=list)
    fail_filenames: set[str] = field(default_factory=set)
    fail_once_filenames: set[str] = field(default_factory=set)
    fail_get_photos: bool = False
    fail_people_update: bool = False
    get_photos_calls: int = 0
    people_updates: list[tuple[str, list[str], list[FaceDetection] | None]] = field(
        default_factory=list
    )
    gate: asyncio.Event | None = None
    active: int = 0
    max_active: int = 0

    async def get_photos(self) -> list[Photo]:
        self.get_photos_calls += 1
        if self.fail_get_photos:
            raise NetworkError("GET /api/photos failed: connection refused")
        return list(self.photos)

    async def upload_photo(
        self, file: MediaFile, tag: PhotoTag, uploader_name: str | None = None
    ) -> Photo:
        self.started.append(file.filename)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            if file.filename in self.fail_once_filenames:
                self.fail_once_filenames.discard(file.filename)
                raise HttpError(503, {"error": "Service Unavailable"})
            if file.filename in self.fail_filenames:
                raise HttpError(500, {"error": "Internal Server Error"})
            self.uploads.append((file, tag, uploader_name))
            photo = Photo(
                id=f"photo-{len(self.uploads)}",
                url=f"/uploads/{file.filename}",
                tag=tag,
                filename=file.filename,
                original_name=file.filename,
                uploader_name=uploader_name,
                size=file.size,
                mimetype=file.content_type,
                uploaded_at=datetime.now(tz=UTC),
            )
            self.photos.append(photo)
            return photo
        finally:
            self.active -= 1

    async def update_photo_people(
        self,
        photo_id: str,
        people: list[str],
        faces: list[FaceDetection] | None = None,
    ) -> Photo:
        self.people_updates.append((photo_id, people, faces))
        if self.fail_people_update:
            raise HttpError(500, {"error": "Internal Server Error"})
        for index, photo in enumerate(self.photos):
            if photo.id == photo_id:
                changes: dict[str, object] = {"people": list(people)}
                if faces is not None:
                    changes["faces"] = list(faces)
                updated = photo.model_copy(update=changes)
                self.photos[index] = updated
                return updated
        raise HttpError(404, {"error": "Photo not found"})

    async def delete_photo(self, photo_id: str) -> None:
        self.photos = [photo for photo in self.photos if photo.id != photo_id]


@dataclass
class FakeFaceDetector(FaceDetector):
    """Fake face detector returning fixed boxes."""

    faces: list[FaceDetection] = field(default_factory=list)
    error: Exception | None = None
    calls: int = 0

    async def detect_faces(self, image_bytes: bytes) -> list[FaceDetection]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.faces)


def make_photo(
    photo_id: str,
    tag: PhotoTag = PhotoTag.WEDDING,
    people: list[str] | None = None,
    size: int = 1000,
    uploaded_at: datetime | None = None,
    original_name: str | None = None,
) -> Photo:
    return Photo(
        id=photo_id,
        url=f"/uploads/{photo_id}.jpg",
        tag=tag,
        filename=f"{photo_id}.jpg",
        original_name=original_name or f"{photo_id}.jpg",
        size=size,
        mimetype="image/jpeg",
        uploaded_at=uploaded_at,
        people=people or [],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url="https://gallery.test",
        access_token="guest-token",
        openai_api_key=None,
        state_file=None,
    )


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    def build(width: int = 64, height: int = 48, color: str = "navy") -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
        return buffer.getvalue()

    return build


@pytest.fixture
def heic_bytes() -> Callable[..., bytes]:
    register_heif_opener()

    def build(width: int = 64, height: int = 48, color: str = "teal") -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format="HEIF")
        return buffer.getvalue()

    return build


@pytest.fixture
def media_file(jpeg_bytes: Callable[..., bytes]) -> Callable[..., MediaFile]:
    def build(
        filename: str = "photo.jpg",
        content_type: str = "image/jpeg",
        data: bytes | None = None,
    ) -> MediaFile:
        return MediaFile(
            filename=filename,
            content_type=content_type,
            data=jpeg_bytes() if data is None else data,
        )

    return build


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
def catalog(store: Store) -> PhotoCatalog:
    return PhotoCatalog(store)


@pytest.fixture
def gallery_api() -> FakeGalleryApi:
    return FakeGalleryApi()


@pytest.fixture
def face_detector() -> FakeFaceDetector:
    return FakeFaceDetector()


@pytest.fixture
def preprocessor() -> MediaPreprocessor:
    return MediaPreprocessor()


@pytest.fixture
def limits() -> UploadLimits:
    return UploadLimits(retry_base_delay_ms=0)


@pytest.fixture
def pipeline(
    gallery_api: FakeGalleryApi,
    preprocessor: MediaPreprocessor,
    catalog: PhotoCatalog,
    store: Store,
    limits: UploadLimits,
) -> UploadPipeline:
    return UploadPipeline(
        api=gallery_api,
        preprocessor=preprocessor,
        catalog=catalog,
        store=store,
        limits=limits,
    )
