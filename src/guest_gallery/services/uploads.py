"""Upload pipeline: validation, bounded-concurrency draining and reconciliation."""

import asyncio
import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import uuid4

from guest_gallery.adapters.gallery_api_client import GalleryApi
from guest_gallery.config import Settings, parse_allowed_types
from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import Photo, PhotoTag
from guest_gallery.domain.uploads import (
    ALLOWED_TRANSITIONS,
    BatchReport,
    Notification,
    SubmittedBatch,
    TaskOutcome,
    TaskState,
    UploadPhase,
    UploadProgress,
    UploadTask,
    format_validation_errors,
)
from guest_gallery.errors import (
    ApiError,
    BatchSizeError,
    IllegalTransitionError,
    PreprocessError,
    UploadCancelledError,
    ValidationError,
)
from guest_gallery.services.catalog import PhotoCatalog
from guest_gallery.services.preprocessor import MediaPreprocessor
from guest_gallery.services.retry import retry_operation
from guest_gallery.services.store import Store

_logger = logging.getLogger(__name__)

_MB = 1024 * 1024


@dataclass(frozen=True)
class UploadLimits:
    """Validation and concurrency limits for uploads."""

    max_file_size: int = 25 * _MB
    max_batch_size: int = 10
    max_concurrent: int = 3
    allowed_types: frozenset[str] = field(
        default_factory=lambda: parse_allowed_types(None)
    )
    upload_retries: int = 1
    retry_base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {self.max_concurrent}")
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be at least 1, got {self.max_batch_size}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "UploadLimits":
        return cls(
            max_file_size=settings.max_file_size,
            max_batch_size=settings.max_batch_size,
            max_concurrent=max(1, settings.max_concurrent_uploads),
            allowed_types=parse_allowed_types(settings.allowed_types),
            upload_retries=settings.upload_retries,
            retry_base_delay_ms=settings.retry_base_delay_ms,
        )


def validate_file(file: MediaFile, limits: UploadLimits) -> ValidationError | None:
    """Return the reason a file cannot be uploaded, or None when it is acceptable."""
    content_type = file.content_type.lower()
    if not content_type.startswith("image/"):
        return ValidationError(file.filename, "Only image files are allowed")
    if file.size > limits.max_file_size:
        return ValidationError(
            file.filename, f"File too large (max {limits.max_file_size / _MB:g}MB)"
        )
    if content_type not in limits.allowed_types:
        return ValidationError(file.filename, "Unsupported file format")
    return None


class UploadPipeline:
    """Queues validated files and drains them with up to N concurrent uploads.

    Workers are plain coroutines looping over a shared deque; each pops the
    next task only after finishing the previous one, so at most
    ``max_concurrent`` uploads are pending at any moment. A task's future
    settles exactly once: on upload success, on upload failure, or when
    :meth:`cancel_all` removes it from the queue before it starts.
    """

    def __init__(
        self,
        api: GalleryApi,
        preprocessor: MediaPreprocessor,
        catalog: PhotoCatalog,
        store: Store,
        limits: UploadLimits | None = None,
    ) -> None:
        self.api = api
        self.preprocessor = preprocessor
        self.catalog = catalog
        self.store = store
        self.limits = limits or UploadLimits()
        self._queue: deque[UploadTask] = deque()
        self._phase = UploadPhase.IDLE
        self._active_workers = 0
        self._started = 0

    @property
    def phase(self) -> UploadPhase:
        return self._phase

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def status(self) -> dict[str, object]:
        return {
            "phase": str(self._phase),
            "queue_length": len(self._queue),
            "active_workers": self._active_workers,
            "selected_tag": str(self.store.get("selected_tag")),
        }

    def set_selected_tag(self, tag: str) -> bool:
        """Select the tag used when submit() is called without one."""
        parsed = PhotoTag.parse(tag)
        if parsed is None:
            _logger.warning("Ignoring unknown tag: %s", tag)
            return False
        self.store.set("selected_tag", parsed)
        return True

    def set_uploader_name(self, name: str) -> None:
        self.store.set("uploader_name", name.strip())

    async def submit(
        self,
        files: Iterable[MediaFile],
        tag: PhotoTag | None = None,
        uploader_name: str | None = None,
    ) -> BatchReport:
        """Upload a batch and report how many files succeeded or failed.

        Validation problems, a rejected batch and per-file failures are all
        reported, never raised. Only a failure of the queue machinery itself
        propagates.
        """
        batch = self.enqueue(files, tag=tag, uploader_name=uploader_name)
        if isinstance(batch, BatchSizeError):
            return BatchReport(
                validation_errors=batch.validation_errors,
                rejected_message=str(batch),
            )
        if not batch.futures:
            return BatchReport(validation_errors=batch.validation_errors)

        _logger.info("Starting upload of %s files", len(batch.futures))
        await self.drain()
        results = await asyncio.gather(*batch.futures, return_exceptions=True)
        outcomes = [
            TaskOutcome(filename=file.filename, photo=result)
            if isinstance(result, Photo)
            else TaskOutcome(filename=file.filename, error=result)
            for file, result in zip(batch.files, results, strict=True)
        ]
        report = BatchReport(outcomes=outcomes, validation_errors=batch.validation_errors)

        if report.succeeded:
            self._notify("success", f"Successfully uploaded {report.succeeded} photo(s)!")
            await self._reconcile()
        if report.failed:
            self._notify("error", f"{report.failed} upload(s) failed")
        _logger.info(
            "Upload batch completed: successful=%s failed=%s",
            report.succeeded,
            report.failed,
        )
        return report

    def enqueue(
        self,
        files: Iterable[MediaFile],
        tag: PhotoTag | None = None,
        uploader_name: str | None = None,
    ) -> SubmittedBatch | BatchSizeError:
        """Validate files and queue the valid ones.

        Returns the rejection instead of a batch when the queue would
        exceed ``max_batch_size``; in that case nothing is queued.
        Must be called from a running event loop.
        """
        resolved_tag = tag or PhotoTag(str(self.store.get("selected_tag")))
        resolved_name = uploader_name
        if resolved_name is None:
            resolved_name = str(self.store.get("uploader_name") or "") or None

        owns_phase = self._phase is UploadPhase.IDLE
        if owns_phase:
            self._transition(UploadPhase.VALIDATING)

        valid: list[MediaFile] = []
        errors: list[ValidationError] = []
        for file in files:
            error = validate_file(file, self.limits)
            if error is None:
                valid.append(file)
            else:
                _logger.info("File rejected: %s", error)
                errors.append(error)
        if errors:
            self._notify("error", format_validation_errors(errors))

        if len(self._queue) + len(valid) > self.limits.max_batch_size:
            rejection = BatchSizeError(self.limits.max_batch_size)
            rejection.validation_errors = list(errors)
            _logger.warning(
                "Batch rejected: queued=%s new=%s max=%s",
                len(self._queue),
                len(valid),
                self.limits.max_batch_size,
            )
            self._notify("error", str(rejection))
            if owns_phase:
                self._transition(UploadPhase.IDLE)
            return rejection

        if not valid:
            if owns_phase:
                self._transition(UploadPhase.IDLE)
            return SubmittedBatch(files=[], futures=[], validation_errors=errors)

        loop = asyncio.get_running_loop()
        futures: list[asyncio.Future[Photo]] = []
        for file in valid:
            future: asyncio.Future[Photo] = loop.create_future()
            self._queue.append(
                UploadTask(
                    id=uuid4().hex,
                    file=file,
                    tag=resolved_tag,
                    uploader_name=resolved_name,
                    future=future,
                )
            )
            futures.append(future)
        if owns_phase:
            self._transition(UploadPhase.QUEUED)
        return SubmittedBatch(files=valid, futures=futures, validation_errors=errors)

    async def drain(self) -> None:
        """Start workers for queued tasks, topping up to max_concurrent."""
        if self._phase is UploadPhase.QUEUED:
            self._started = 0
            self._transition(UploadPhase.DRAINING)
        if self._phase is not UploadPhase.DRAINING:
            return
        count = min(self.limits.max_concurrent - self._active_workers, len(self._queue))
        if count <= 0:
            return
        self._active_workers += count
        try:
            await asyncio.gather(*(self._worker() for _ in range(count)))
        except asyncio.CancelledError:
            _logger.warning("Upload queue processing was cancelled")
            self._reject_queued(UploadCancelledError())
            raise
        except Exception as exc:
            _logger.exception("Upload queue processing failed")
            self._reject_queued(exc)
            raise

    def cancel_all(self) -> int:
        """Reject every task that has not started yet; in-flight uploads continue."""
        if not self._queue:
            return 0
        cancelled = self._reject_queued(UploadCancelledError())
        self._notify("info", f"Canceled {cancelled} pending upload(s)")
        _logger.info("Uploads canceled: count=%s", cancelled)
        return cancelled

    async def _worker(self) -> None:
        try:
            while self._queue:
                task = self._queue.popleft()
                try:
                    self._started += 1
                    self._report_progress(task)
                    await self._process(task)
                except asyncio.CancelledError:
                    task.reject(UploadCancelledError())
                    raise
                except Exception as exc:
                    task.reject(exc)
                    raise
        finally:
            self._active_workers -= 1
            if self._active_workers == 0 and not self._queue:
                self._finish_drain()

    async def _process(self, task: UploadTask) -> None:
        try:
            task.state = TaskState.PREPROCESSING
            file = await self._preprocess(task.file)
            task.state = TaskState.UPLOADING
            photo = await self._upload(task, file)
            self.catalog.add_photo(photo)
        except Exception as exc:
            _logger.warning("File upload failed: %s: %s", task.file.filename, exc)
            task.reject(exc)
            return
        task.resolve(photo)
        _logger.info(
            "File uploaded successfully: %s -> %s", task.file.filename, photo.id
        )

    async def _preprocess(self, file: MediaFile) -> MediaFile:
        try:
            result = await self.preprocessor.preprocess(file)
        except PreprocessError as exc:
            _logger.warning(
                "File preprocessing failed, using original %s: %s", file.filename, exc
            )
            return file
        return result.file

    async def _upload(self, task: UploadTask, file: MediaFile) -> Photo:
        async def operation() -> Photo:
            return await self.api.upload_photo(file, task.tag, task.uploader_name)

        if self.limits.upload_retries > 1:
            return await retry_operation(
                operation,
                max_retries=self.limits.upload_retries,
                base_delay_ms=self.limits.retry_base_delay_ms,
            )
        return await operation()

    async def _reconcile(self) -> None:
        try:
            await self.catalog.load_photos(self.api)
        except ApiError as exc:
            _logger.warning("Photo reload after upload failed: %s", exc)

    def _reject_queued(self, error: BaseException) -> int:
        pending = list(self._queue)
        self._queue.clear()
        for task in pending:
            task.reject(error)
        if self._phase is UploadPhase.QUEUED:
            self._transition(UploadPhase.IDLE)
        elif self._active_workers == 0:
            self._finish_drain()
        return len(pending)

    def _finish_drain(self) -> None:
        if self._phase is UploadPhase.DRAINING:
            self._transition(UploadPhase.IDLE)
            self.store.set("upload_progress", None)

    def _report_progress(self, task: UploadTask) -> None:
        total = self._started + len(self._queue)
        percentage = round(self._started / total * 100) if total else 100
        self.store.set(
            "upload_progress",
            UploadProgress(
                percentage=percentage, message=f"Uploading {task.file.filename}..."
            ),
        )

    def _transition(self, phase: UploadPhase) -> None:
        if phase not in ALLOWED_TRANSITIONS[self._phase]:
            raise IllegalTransitionError(f"Cannot move from {self._phase} to {phase}")
        self._phase = phase
        self.store.update(
            {
                "upload_phase": phase,
                "upload_in_progress": phase is UploadPhase.DRAINING,
            }
        )

    def _notify(self, level: str, message: str) -> None:
        self.store.set("notification", Notification(level=level, message=message))
