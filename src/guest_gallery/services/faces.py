"""Face detection and people tagging for catalog photos."""

import logging
from dataclasses import dataclass
from typing import Protocol

from guest_gallery.adapters.gallery_api_client import GalleryApi
from guest_gallery.domain.photos import FaceDetection, Photo
from guest_gallery.domain.uploads import Notification
from guest_gallery.errors import ApiError
from guest_gallery.services.catalog import PhotoCatalog
from guest_gallery.services.store import Store

_logger = logging.getLogger(__name__)

FACE_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "faces": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "x": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                    "y": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                    "width": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                    "height": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                    "confidence": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                },
                "required": ["x", "y", "width", "height", "confidence"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["faces"],
    "additionalProperties": False,
}


class FaceDetector(Protocol):
    """Interface for anything that can find faces in an image."""

    async def detect_faces(self, image_bytes: bytes) -> list[FaceDetection]:
        """Return face boxes as fractions of the image width and height."""


@dataclass
class FaceTaggingService:
    """Detects faces on catalog photos and assigns people to them."""

    api: GalleryApi
    catalog: PhotoCatalog
    store: Store
    detector: FaceDetector | None = None
    confidence_threshold: float = 0.5
    max_faces: int = 10

    @property
    def enabled(self) -> bool:
        return self.detector is not None

    async def detect(self, photo_id: str, image_bytes: bytes) -> list[FaceDetection]:
        """Detect faces, store them on the photo and sync them to the server.

        Detector failures are logged and reported as no faces found.
        """
        photo = self.catalog.get_photo(photo_id)
        if photo is None:
            _logger.warning("Photo not found for face detection: %s", photo_id)
            return []
        if self.detector is None:
            _logger.info("Face detection is disabled")
            return []

        self.store.set("face_detection_in_progress", True)
        try:
            detections = await self.detector.detect_faces(image_bytes)
        except Exception:
            _logger.exception("Face detection failed for photo %s", photo_id)
            self._notify("error", "Face detection failed. Please try again.")
            return []
        finally:
            self.store.set("face_detection_in_progress", False)

        faces = self._select(detections)
        _logger.info("Detected %s faces on photo %s", len(faces), photo_id)
        if not faces:
            self._notify("info", "No faces detected in this photo.")
            return []

        await self._save(photo, list(photo.people), faces)
        self._notify(
            "success", f"Found {len(faces)} face(s)! Tag them to add people."
        )
        return faces

    async def tag_face(
        self, photo_id: str, face_index: int, person_name: str
    ) -> Photo | None:
        """Assign a person to one detected face and add them to the photo's people."""
        name = person_name.strip()
        photo = self.catalog.get_photo(photo_id)
        if photo is None or not name:
            _logger.warning("Cannot tag face %s on photo %s", face_index, photo_id)
            return None
        if not 0 <= face_index < len(photo.faces):
            raise IndexError(f"Photo {photo_id} has no face {face_index}")

        faces = list(photo.faces)
        faces[face_index] = faces[face_index].model_copy(update={"person_name": name})
        people = list(photo.people)
        if name not in people:
            people.append(name)
        updated = await self._save(photo, people, faces)
        self._notify("success", f"Tagged {name}!")
        return updated

    async def remove_person(self, photo_id: str, person_name: str) -> Photo | None:
        """Remove a person from the photo and clear their face assignments."""
        photo = self.catalog.get_photo(photo_id)
        if photo is None:
            _logger.warning("Photo not found for person removal: %s", photo_id)
            return None
        people = [person for person in photo.people if person != person_name]
        faces = [
            face.model_copy(update={"person_name": None})
            if face.person_name == person_name
            else face
            for face in photo.faces
        ]
        updated = await self._save(photo, people, faces)
        self._notify("info", f"Removed {person_name}")
        return updated

    def _select(self, detections: list[FaceDetection]) -> list[FaceDetection]:
        confident = [
            face for face in detections if face.confidence >= self.confidence_threshold
        ]
        confident.sort(key=lambda face: face.confidence, reverse=True)
        return confident[: self.max_faces]

    async def _save(
        self, photo: Photo, people: list[str], faces: list[FaceDetection]
    ) -> Photo | None:
        updated = self.catalog.update_photo(photo.id, people=people, faces=faces)
        try:
            confirmed = await self.api.update_photo_people(photo.id, people, faces)
        except ApiError as exc:
            _logger.warning("Failed to sync people for photo %s: %s", photo.id, exc)
            return updated
        self.catalog.add_photo(confirmed)
        return confirmed

    def _notify(self, level: str, message: str) -> None:
        self.store.set("notification", Notification(level=level, message=message))
