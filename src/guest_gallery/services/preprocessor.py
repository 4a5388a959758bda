"""Per-file media preprocessing before upload."""

import asyncio
import io
import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from guest_gallery.domain.media import MediaFile, PreprocessResult, PreprocessStep
from guest_gallery.errors import PreprocessError

register_heif_opener()

_logger = logging.getLogger(__name__)

_DECODE_ERRORS = (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError)


def compute_scaled_size(width: int, height: int, max_width: int) -> tuple[int, int]:
    """Scale (width, height) so width fits max_width, keeping the aspect ratio.

    The factor is ``min(1, max_width / width)``, so images are never upscaled.
    """
    if width <= 0 or height <= 0:
        raise ValueError("Image dimensions must be positive")
    factor = min(1.0, max_width / width)
    if factor == 1.0:
        return width, height
    return max(1, round(width * factor)), max(1, round(height * factor))


def jpeg_filename(filename: str) -> str:
    """Return filename with its extension replaced by .jpg."""
    path = Path(filename)
    if path.suffix.lower() in {".jpg", ".jpeg"}:
        return filename
    return f"{path.stem or path.name}.jpg"


@dataclass
class MediaPreprocessor:
    """Converts HEIC/HEIF to JPEG and downsizes large images."""

    compression_threshold: int = 1024 * 1024
    max_width: int = 1920
    jpeg_quality: int = 80
    heic_jpeg_quality: int = 90

    async def preprocess(self, file: MediaFile) -> PreprocessResult:
        """Run conversion then compression.

        Raises PreprocessError when an HEIC/HEIF file cannot be converted;
        compression failures fall back to the unmodified input.
        """
        steps: list[PreprocessStep] = []
        current = file
        if file.is_heif:
            _logger.info(
                "Converting %s to JPEG: type=%s", file.filename, file.content_type
            )
            current = await asyncio.to_thread(self.convert_heic_to_jpeg, file)
            steps.append(PreprocessStep.CONVERT)
            _logger.info(
                "Conversion finished: %s bytes -> %s bytes", file.size, current.size
            )

        if current.size <= self.compression_threshold:
            return PreprocessResult(file=current, steps=tuple(steps))

        compressed = await asyncio.to_thread(self.compress_image, current)
        if compressed is not current:
            steps.append(PreprocessStep.COMPRESS)
            _logger.info(
                "Compressed %s: %s bytes -> %s bytes",
                current.filename,
                current.size,
                compressed.size,
            )
        return PreprocessResult(file=compressed, steps=tuple(steps))

    def convert_heic_to_jpeg(self, file: MediaFile) -> MediaFile:
        """Decode an HEIC/HEIF file and re-encode it as JPEG."""
        try:
            with Image.open(io.BytesIO(file.data)) as image:
                oriented = ImageOps.exif_transpose(image)
                jpeg_data = _encode_jpeg(oriented, self.heic_jpeg_quality)
        except _DECODE_ERRORS as exc:
            raise PreprocessError(
                f"Failed to convert HEIC file {file.filename}: {exc}"
            ) from exc
        return MediaFile(
            filename=jpeg_filename(file.filename),
            content_type="image/jpeg",
            data=jpeg_data,
            last_modified=file.last_modified,
        )

    def compress_image(self, file: MediaFile) -> MediaFile:
        """Downscale to max_width and recompress; return the input on any decode error."""
        try:
            with Image.open(io.BytesIO(file.data)) as image:
                if getattr(image, "is_animated", False):
                    return file
                oriented = ImageOps.exif_transpose(image)
                size = compute_scaled_size(oriented.width, oriented.height, self.max_width)
                if size != oriented.size:
                    oriented = oriented.resize(size, Image.Resampling.LANCZOS)
                jpeg_data = _encode_jpeg(oriented, self.jpeg_quality)
        except _DECODE_ERRORS as exc:
            _logger.warning("Could not decode %s for compression: %s", file.filename, exc)
            return file
        return MediaFile(
            filename=jpeg_filename(file.filename),
            content_type="image/jpeg",
            data=jpeg_data,
            last_modified=file.last_modified,
        )


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()
