"""
SiteWalk - Floorplan File Storage
Uploaded floorplan files on local disk (storage/floorplans/)
"""
import logging
import os
import uuid
from pathlib import Path

import aiofiles

from app.config import get_floorplan_storage_path

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
}


def resolve_path(file_name: str) -> Path:
    """Absolute path of a stored file; stored names never contain directories."""
    return get_floorplan_storage_path() / os.path.basename(file_name)


async def save_floorplan_file(content: bytes, name: str, content_type: str) -> str:
    """
    Write an upload to storage.

    Returns:
        The stored file name (what Floorplan.file_path holds)
    """
    unique_id = uuid.uuid4().hex[:8]
    safe_name = "".join(c if c.isalnum() else "_" for c in name.lower())[:60] or "floorplan"
    file_name = f"{safe_name}_{unique_id}{EXTENSIONS.get(content_type, '.bin')}"

    async with aiofiles.open(resolve_path(file_name), 'wb') as f:
        await f.write(content)

    logger.info(f"Floorplan file saved: {file_name} ({len(content)} bytes)")
    return file_name


async def read_floorplan_file(file_name: str) -> bytes:
    """Raises FileNotFoundError when the stored file is gone."""
    async with aiofiles.open(resolve_path(file_name), 'rb') as f:
        return await f.read()


def delete_floorplan_file(file_name: str) -> bool:
    path = resolve_path(file_name)
    if not path.exists():
        logger.warning(f"Floorplan file already missing: {file_name}")
        return False
    os.remove(path)
    logger.info(f"Floorplan file deleted: {file_name}")
    return True
