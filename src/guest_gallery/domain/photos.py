"""Domain models for gallery photos."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

ALL_CATEGORIES = "all"


class PhotoTag(StrEnum):
    """Closed set of photo categories."""

    WEDDING = "wedding"
    RECEPTION = "reception"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "PhotoTag | None":
        """Return the tag for a raw value, or None when it is not a known tag."""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class FaceDetection(BaseModel):
    """Bounding box of a detected face, optionally assigned to a person."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    person_name: str | None = Field(default=None, alias="personName")


class Photo(BaseModel):
    """Server-confirmed photo record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str
    url: str
    tag: PhotoTag = PhotoTag.OTHER
    filename: str | None = None
    original_name: str | None = Field(default=None, alias="originalName")
    uploader_name: str | None = Field(default=None, alias="photographer")
    size: int = 0
    mimetype: str | None = None
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")
    people: list[str] = Field(default_factory=list)
    faces: list[FaceDetection] = Field(default_factory=list)


@dataclass(frozen=True)
class PhotoFilters:
    """Category and person filters applied to the catalog."""

    category: str = ALL_CATEGORIES
    person: str = ""


@dataclass(frozen=True)
class GalleryStats:
    """Aggregate statistics about the photo collection."""

    total_photos: int
    total_people: int
    by_tag: dict[str, int] = field(default_factory=dict)
    by_person: dict[str, int] = field(default_factory=dict)
    uploaded_today: int = 0
    total_size: int = 0
