"""Domain models for files selected for upload."""

import mimetypes
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

HEIF_TYPES = frozenset({"image/heic", "image/heif"})
HEIF_SUFFIXES = frozenset({".heic", ".heif"})

mimetypes.add_type("image/heic", ".heic")
mimetypes.add_type("image/heif", ".heif")
mimetypes.add_type("image/webp", ".webp")


@dataclass(frozen=True)
class MediaFile:
    """An in-memory file handle: name, declared MIME type and bytes."""

    filename: str
    content_type: str
    data: bytes = field(repr=False)
    last_modified: datetime | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_heif(self) -> bool:
        """True when the file is an HEIC/HEIF container."""
        if self.content_type.lower() in HEIF_TYPES:
            return True
        return not self.content_type and Path(self.filename).suffix.lower() in HEIF_SUFFIXES

    @classmethod
    def from_path(cls, path: str | Path) -> "MediaFile":
        """Read a file from disk, guessing its MIME type from the suffix."""
        file_path = Path(path)
        content_type, _ = mimetypes.guess_type(file_path.name)
        stat = file_path.stat()
        return cls(
            filename=file_path.name,
            content_type=content_type or "",
            data=file_path.read_bytes(),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        )


class PreprocessStep(StrEnum):
    """Transformations the preprocessor may apply to a file."""

    CONVERT = "convert"
    COMPRESS = "compress"


@dataclass(frozen=True)
class PreprocessResult:
    """The file to upload and the steps that produced it."""

    file: MediaFile
    steps: tuple[PreprocessStep, ...] = ()

    @property
    def passthrough(self) -> bool:
        return not self.steps
