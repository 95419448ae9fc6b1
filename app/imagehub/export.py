"""
ZIP export of generated images.
"""
import io
import logging
import zipfile
from typing import Sequence

from .errors import NothingToExportError

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "images.zip"


def build_archive(items: Sequence) -> bytes:
    """
    Package generated images into one ZIP archive.

    Args:
        items: Successfully generated PromptItem objects, e.g. from
            GenerationQueue.ok_items()

    Returns:
        ZIP file bytes, one entry per image under its derived name
    """
    if not items:
        raise NothingToExportError("No generated images to export")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item in items:
            archive.writestr(item.name, item.image_data)

    logger.info(f"Built {ARCHIVE_NAME} with {len(items)} images")
    return buffer.getvalue()
