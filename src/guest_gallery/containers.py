"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from guest_gallery.adapters.gallery_api_client import (
    GalleryEndpoints,
    HttpxGalleryClient,
)
from guest_gallery.adapters.openai_face_detector import OpenAIFaceDetector
from guest_gallery.config import Settings
from guest_gallery.errors import ApiError
from guest_gallery.services.catalog import PhotoCatalog
from guest_gallery.services.faces import FaceTaggingService
from guest_gallery.services.preprocessor import MediaPreprocessor
from guest_gallery.services.store import Store
from guest_gallery.services.uploads import UploadLimits, UploadPipeline

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: Store
    api_client: HttpxGalleryClient
    catalog: PhotoCatalog
    preprocessor: MediaPreprocessor
    upload_pipeline: UploadPipeline
    face_tagging_service: FaceTaggingService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    store = Store(history_limit=resolved_settings.history_limit)
    api_client = HttpxGalleryClient.create(
        base_url=resolved_settings.api_base_url,
        access_token=resolved_settings.access_token,
        endpoints=GalleryEndpoints(
            photos=resolved_settings.photos_endpoint,
            upload=resolved_settings.upload_endpoint,
            people=resolved_settings.people_endpoint,
            stats=resolved_settings.stats_endpoint,
            health=resolved_settings.health_endpoint,
        ),
        timeout_ms=resolved_settings.request_timeout_ms,
    )
    catalog = PhotoCatalog(store)
    preprocessor = MediaPreprocessor(
        compression_threshold=resolved_settings.compression_threshold,
        max_width=resolved_settings.max_width,
        jpeg_quality=resolved_settings.jpeg_quality,
        heic_jpeg_quality=resolved_settings.heic_jpeg_quality,
    )
    upload_pipeline = UploadPipeline(
        api=api_client,
        preprocessor=preprocessor,
        catalog=catalog,
        store=store,
        limits=UploadLimits.from_settings(resolved_settings),
    )
    face_detector = None
    if resolved_settings.openai_api_key:
        face_detector = OpenAIFaceDetector.create(
            api_key=resolved_settings.openai_api_key,
            model=resolved_settings.openai_model,
        )
    face_tagging_service = FaceTaggingService(
        api=api_client,
        catalog=catalog,
        store=store,
        detector=face_detector,
        confidence_threshold=resolved_settings.face_confidence_threshold,
        max_faces=resolved_settings.max_faces,
    )

    async def close_resources() -> None:
        if resolved_settings.state_file:
            store.save_persistent_state(resolved_settings.state_file)
        catalog.close()
        await api_client.close()
        if face_detector is not None:
            await face_detector.close()

    return AppContainer(
        settings=resolved_settings,
        store=store,
        api_client=api_client,
        catalog=catalog,
        preprocessor=preprocessor,
        upload_pipeline=upload_pipeline,
        face_tagging_service=face_tagging_service,
        close_resources=close_resources,
    )


async def start_app(container: AppContainer, *, load_photos: bool = True) -> None:
    """Probe the API, restore preferences and load the initial photo list.

    Only the health probe and the photo load touch the network; neither
    failure stops startup.
    """
    settings = container.settings
    await container.api_client.initialize()
    if settings.state_file:
        container.store.load_persistent_state(settings.state_file)
    container.store.set("debug_mode", settings.log_level.upper() == "DEBUG")
    if load_photos:
        try:
            await container.catalog.load_photos(container.api_client)
        except ApiError as exc:
            _logger.warning("Initial photo load failed: %s", exc)
            container.store.set("online", False)
    container.store.set("app_ready", True)
    _logger.info("Guest gallery ready (environment=%s)", settings.environment)
