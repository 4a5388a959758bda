"""Command line front end for the guest gallery."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path

from guest_gallery.app_logging import configure_logging
from guest_gallery.config import Settings
from guest_gallery.containers import AppContainer, build_container, start_app
from guest_gallery.domain.media import MediaFile
from guest_gallery.domain.photos import ALL_CATEGORIES, PhotoTag
from guest_gallery.errors import ApiError

_logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif"}
)


def collect_files(paths: Iterable[str | Path], recursive: bool = False) -> list[Path]:
    """Expand directories into the image files they contain, in sorted order."""
    collected: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            collected.append(path)
        elif path.is_dir():
            candidates = path.rglob("*") if recursive else path.iterdir()
            collected.extend(
                sorted(
                    candidate
                    for candidate in candidates
                    if candidate.is_file()
                    and candidate.suffix.lower() in SUPPORTED_EXTENSIONS
                )
            )
        else:
            _logger.warning("Path not found: %s", path)
    return collected


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guest-gallery", description="Upload and browse guest gallery photos"
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    upload = subcommands.add_parser("upload", help="Upload image files")
    upload.add_argument("paths", nargs="+", help="Image files or directories")
    upload.add_argument(
        "--tag", choices=[str(tag) for tag in PhotoTag], help="Photo category"
    )
    upload.add_argument("--uploader", help="Name shown as the photographer")
    upload.add_argument(
        "--recursive", action="store_true", help="Search directories recursively"
    )
    upload.add_argument(
        "--dry-run",
        action="store_true",
        help="List the files that would be uploaded without uploading",
    )

    list_photos = subcommands.add_parser("list", help="List photos in the gallery")
    list_photos.add_argument(
        "--tag",
        default=ALL_CATEGORIES,
        choices=[ALL_CATEGORIES, *(str(tag) for tag in PhotoTag)],
        help="Only show one category",
    )
    list_photos.add_argument("--person", default="", help="Only show one person")

    subcommands.add_parser("stats", help="Show gallery statistics")
    return parser


async def run_upload(container: AppContainer, args: argparse.Namespace) -> int:
    files = collect_files(args.paths, recursive=args.recursive)
    if not files:
        print("No image files found to upload.")
        return 1
    if args.dry_run:
        for path in files:
            print(f"- {path}")
        return 0

    await start_app(container, load_photos=False)
    pipeline = container.upload_pipeline
    if args.uploader is not None:
        pipeline.set_uploader_name(args.uploader)
    report = await pipeline.submit(
        [MediaFile.from_path(path) for path in files],
        tag=PhotoTag.parse(args.tag),
    )
    for line in report.messages():
        print(line)
    return 0 if report.succeeded and not (report.failed or report.validation_errors) else 1


async def run_list(container: AppContainer, args: argparse.Namespace) -> int:
    await start_app(container)
    if not container.store.get("online"):
        print("Gallery server is unreachable.")
        return 1
    catalog = container.catalog
    catalog.set_category_filter(args.tag)
    catalog.set_person_filter(args.person)
    photos = catalog.sort_photos("uploaded_at", "desc")
    for photo in photos:
        people = ", ".join(photo.people) or "-"
        print(f"{photo.id}\t{photo.tag}\t{photo.original_name or photo.filename}\t{people}")
    print(f"{len(photos)} photo(s)")
    return 0


async def run_stats(container: AppContainer, args: argparse.Namespace) -> int:
    await container.api_client.initialize()
    try:
        stats = await container.api_client.get_stats()
    except ApiError as exc:
        print(f"Failed to load statistics: {exc.user_message}")
        return 1
    for key, value in stats.items():
        print(f"{key}: {value}")
    return 0


COMMANDS = {
    "upload": run_upload,
    "list": run_list,
    "stats": run_stats,
}


async def run(args: argparse.Namespace, settings: Settings | None = None) -> int:
    container = build_container(settings)
    try:
        return await COMMANDS[args.command](container, args)
    finally:
        await container.close_resources()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
