"""Error taxonomy shared by the upload pipeline and the request client."""


class GalleryError(Exception):
    """Base class for guest gallery errors."""

    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class ValidationError(GalleryError):
    """A file was rejected before any network activity."""

    default_user_message = "Some files could not be uploaded."

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"{filename}: {reason}", user_message=f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


class BatchSizeError(GalleryError):
    """The batch would exceed the configured maximum queue size."""

    def __init__(self, max_batch_size: int) -> None:
        message = f"Maximum {max_batch_size} files can be uploaded at once"
        super().__init__(message, user_message=message)
        self.max_batch_size = max_batch_size
        self.validation_errors: list[ValidationError] = []


class PreprocessError(GalleryError):
    """Transcoding an image failed."""

    default_user_message = "The image could not be converted."


class ApiError(GalleryError):
    """Base class for request client failures."""

    default_user_message = "The gallery server could not be reached."


class NetworkError(ApiError):
    """Transport-level failure talking to the gallery API."""


class RequestTimeoutError(NetworkError):
    """The request did not finish before its deadline."""

    default_user_message = "The request timed out. Please try again."


class HttpError(ApiError):
    """The gallery API answered with a non-2xx status."""

    def __init__(self, status: int, body: dict[str, object]) -> None:
        error_text = body.get("error") if isinstance(body, dict) else None
        message = str(error_text) if error_text else f"HTTP {status}"
        super().__init__(message, user_message=message)
        self.status = status
        self.body = body


class SerializationError(ApiError):
    """The gallery API response could not be parsed."""

    default_user_message = "The server sent an unexpected response."


class UploadCancelledError(GalleryError):
    """A queued upload was cancelled before it started."""

    def __init__(self) -> None:
        super().__init__("Upload canceled by user", user_message="Upload canceled")


class IllegalTransitionError(RuntimeError):
    """The upload pipeline was asked to make an impossible phase change."""
