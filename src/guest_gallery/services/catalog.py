"""Canonical photo list and its filtered view."""

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Protocol

from guest_gallery.domain.photos import (
    ALL_CATEGORIES,
    GalleryStats,
    Photo,
    PhotoFilters,
    PhotoTag,
)
from guest_gallery.services.store import Store

_logger = logging.getLogger(__name__)

SORT_KEYS: dict[str, Callable[[Photo], object]] = {
    "uploaded_at": lambda photo: photo.uploaded_at.timestamp() if photo.uploaded_at else 0.0,
    "size": lambda photo: photo.size,
    "tag": lambda photo: str(photo.tag),
    "name": lambda photo: photo.original_name or photo.filename or "",
}


class PhotoSource(Protocol):
    """Anything that can list the server's photos."""

    async def get_photos(self) -> list[Photo]:
        """Return every photo known to the server."""


def apply_filters(photos: Iterable[Photo], filters: PhotoFilters) -> list[Photo]:
    """Return the photos matching the category and person filters."""
    filtered = list(photos)
    if filters.category and filters.category != ALL_CATEGORIES:
        filtered = [photo for photo in filtered if photo.tag == filters.category]
    if filters.person:
        filtered = [photo for photo in filtered if filters.person in photo.people]
    return filtered


class PhotoCatalog:
    """Owns the photo list; every mutation republishes both views to the store."""

    def __init__(self, store: Store) -> None:
        self.store = store
        self._photos: list[Photo] = list(store.get("photos"))  # type: ignore[arg-type]
        self._publishing = False
        self._unsubscribers = [
            store.subscribe("photos", self._on_photos_changed),
            store.subscribe("current_filter", self._on_filter_changed),
            store.subscribe("selected_person", self._on_filter_changed),
        ]

    @property
    def filters(self) -> PhotoFilters:
        return PhotoFilters(
            category=str(self.store.get("current_filter")),
            person=str(self.store.get("selected_person") or ""),
        )

    def get_photos(self) -> list[Photo]:
        return list(self._photos)

    def get_filtered_photos(self) -> list[Photo]:
        return list(self.store.get("filtered_photos"))  # type: ignore[arg-type]

    def get_photo(self, photo_id: str) -> Photo | None:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    async def load_photos(self, source: PhotoSource) -> list[Photo]:
        """Replace the catalog with the server's photo list."""
        photos = await source.get_photos()
        self.set_photos(photos)
        _logger.info("Loaded %s photos", len(photos))
        return photos

    def set_photos(self, photos: Iterable[Photo]) -> None:
        self._photos = list(photos)
        self._publish()

    def clear(self) -> None:
        self.set_photos([])

    def add_photo(self, photo: Photo) -> None:
        """Insert a photo, replacing any existing photo with the same id."""
        for index, existing in enumerate(self._photos):
            if existing.id == photo.id:
                self._photos[index] = photo
                _logger.info("Updated existing photo: %s", photo.id)
                break
        else:
            self._photos.append(photo)
            _logger.info("Added new photo: %s", photo.id)
        self._publish()

    def remove_photo(self, photo_id: str) -> Photo | None:
        for index, existing in enumerate(self._photos):
            if existing.id == photo_id:
                removed = self._photos.pop(index)
                self._publish()
                return removed
        _logger.warning("Photo not found for removal: %s", photo_id)
        return None

    def update_photo(self, photo_id: str, **changes: object) -> Photo | None:
        """Apply field changes to one photo; returns the updated photo."""
        for index, existing in enumerate(self._photos):
            if existing.id == photo_id:
                updated = existing.model_copy(update=changes)
                self._photos[index] = updated
                self._publish()
                return updated
        _logger.warning("Photo not found for update: %s", photo_id)
        return None

    def set_category_filter(self, category: str) -> None:
        """Filter by tag, or ``"all"``; unknown tags are ignored."""
        if category != ALL_CATEGORIES and PhotoTag.parse(category) is None:
            _logger.warning("Ignoring unknown category filter: %s", category)
            return
        value = category if category == ALL_CATEGORIES else str(PhotoTag.parse(category))
        if self.store.get("current_filter") != value:
            self.store.set("current_filter", value)

    def set_person_filter(self, person: str) -> None:
        value = person.strip()
        if self.store.get("selected_person") != value:
            self.store.set("selected_person", value)

    def get_people(self) -> list[str]:
        """Sorted unique names of everyone tagged in the catalog."""
        people = {
            person.strip()
            for photo in self._photos
            for person in photo.people
            if person and person.strip()
        }
        return sorted(people)

    def photos_by_tag(self, tag: PhotoTag | str) -> list[Photo]:
        return [photo for photo in self._photos if photo.tag == tag]

    def photos_by_person(self, person: str) -> list[Photo]:
        return [photo for photo in self._photos if person in photo.people]

    def search_photos(self, query: str) -> list[Photo]:
        """Match the query against tag, people and original filename."""
        term = query.strip().lower()
        if not term:
            return self.get_photos()
        return [
            photo
            for photo in self._photos
            if term in str(photo.tag)
            or any(term in person.lower() for person in photo.people)
            or term in (photo.original_name or "").lower()
        ]

    def sort_photos(self, criteria: str = "uploaded_at", order: str = "desc") -> list[Photo]:
        """Return the filtered view sorted by one of SORT_KEYS."""
        key = SORT_KEYS.get(criteria)
        photos = self.get_filtered_photos()
        if key is None:
            return photos
        return sorted(photos, key=key, reverse=order != "asc")

    def get_stats(self) -> GalleryStats:
        today = datetime.now(tz=UTC).date()
        people = self.get_people()
        return GalleryStats(
            total_photos=len(self._photos),
            total_people=len(people),
            by_tag={str(tag): len(self.photos_by_tag(tag)) for tag in PhotoTag},
            by_person={person: len(self.photos_by_person(person)) for person in people},
            uploaded_today=sum(
                1
                for photo in self._photos
                if photo.uploaded_at and photo.uploaded_at.astimezone(UTC).date() == today
            ),
            total_size=sum(photo.size for photo in self._photos),
        )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_photos_changed(self, new_value: object, old_value: object) -> None:
        # Writes from outside the catalog (e.g. Store.reset) replace the source list.
        if self._publishing:
            return
        self._photos = list(new_value or [])  # type: ignore[call-overload]
        self.store.set("filtered_photos", apply_filters(self._photos, self.filters))

    def _on_filter_changed(self, new_value: object, old_value: object) -> None:
        self.store.set("filtered_photos", apply_filters(self._photos, self.filters))

    def _publish(self) -> None:
        self._publishing = True
        try:
            self.store.update(
                {
                    "photos": list(self._photos),
                    "filtered_photos": apply_filters(self._photos, self.filters),
                }
            )
        finally:
            self._publishing = False
