"""Domain models for the upload pipeline."""

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum

from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import Photo, PhotoTag
from guest_gallery.errors import UploadCancelledError, ValidationError


class UploadPhase(StrEnum):
    """Lifecycle of the upload pipeline."""

    IDLE = "idle"
    VALIDATING = "validating"
    QUEUED = "queued"
    DRAINING = "draining"


ALLOWED_TRANSITIONS: dict[UploadPhase, frozenset[UploadPhase]] = {
    UploadPhase.IDLE: frozenset({UploadPhase.VALIDATING}),
    UploadPhase.VALIDATING: frozenset({UploadPhase.QUEUED, UploadPhase.IDLE}),
    UploadPhase.QUEUED: frozenset({UploadPhase.DRAINING, UploadPhase.IDLE}),
    UploadPhase.DRAINING: frozenset({UploadPhase.IDLE}),
}


class TaskState(StrEnum):
    """Lifecycle of a single queued upload."""

    QUEUED = "queued"
    PREPROCESSING = "preprocessing"
    UPLOADING = "uploading"
    SETTLED = "settled"


@dataclass
class UploadTask:
    """A validated file waiting for, or undergoing, upload."""

    id: str
    file: MediaFile
    tag: PhotoTag
    uploader_name: str | None
    future: "asyncio.Future[Photo]" = field(repr=False)
    state: TaskState = TaskState.QUEUED

    def resolve(self, photo: Photo) -> None:
        self.state = TaskState.SETTLED
        if not self.future.done():
            self.future.set_result(photo)

    def reject(self, error: BaseException) -> None:
        self.state = TaskState.SETTLED
        if not self.future.done():
            self.future.set_exception(error)


@dataclass(frozen=True)
class UploadProgress:
    """Progress of the batch currently draining."""

    percentage: int
    message: str


@dataclass(frozen=True)
class Notification:
    """A user-facing message published through the store."""

    level: str
    message: str


@dataclass(frozen=True)
class SubmittedBatch:
    """Files accepted into the queue plus the ones rejected by validation."""

    files: list[MediaFile]
    futures: list["asyncio.Future[Photo]"]
    validation_errors: list[ValidationError]


@dataclass(frozen=True)
class TaskOutcome:
    """Settled result of one upload."""

    filename: str
    photo: Photo | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.photo is not None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, UploadCancelledError)


@dataclass(frozen=True)
class BatchReport:
    """Aggregate result of one submitted batch."""

    outcomes: list[TaskOutcome] = field(default_factory=list)
    validation_errors: list[ValidationError] = field(default_factory=list)
    rejected_message: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def photos(self) -> list[Photo]:
        return [outcome.photo for outcome in self.outcomes if outcome.photo]

    def messages(self) -> list[str]:
        """Human readable summary lines for this batch."""
        lines: list[str] = []
        if self.rejected_message:
            lines.append(self.rejected_message)
        if self.validation_errors:
            lines.append(format_validation_errors(self.validation_errors))
        if self.succeeded:
            lines.append(f"Successfully uploaded {self.succeeded} photo(s)!")
        if self.failed:
            lines.append(f"{self.failed} upload(s) failed")
            lines.extend(
                f"{outcome.filename}: {_describe(outcome.error)}"
                for outcome in self.outcomes
                if not outcome.succeeded
            )
        return lines


def format_validation_errors(errors: list[ValidationError]) -> str:
    """Collapse per-file validation errors into one message."""
    details = "\n".join(f"{error.filename}: {error.reason}" for error in errors)
    return f"Upload errors:\n{details}"


def _describe(error: BaseException | None) -> str:
    if error is None:
        return "no photo returned"
    return getattr(error, "user_message", None) or str(error) or type(error).__name__
