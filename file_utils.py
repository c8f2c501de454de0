import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Optional

import aiofiles
from PIL import Image, UnidentifiedImageError

from config import Config

logger = logging.getLogger(__name__)

# Allowed file types
ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png'}
ALLOWED_MIME_TYPES = {'image/jpeg', 'image/jpg', 'image/png'}
MAX_FILE_SIZE = Config.MAX_UPLOAD_SIZE

# Upload directories; images are served from STATIC_DIR at /images/<filename>
STATIC_DIR = Config.STATIC_DIR
IMAGES_DIR = STATIC_DIR / "images"
TEMP_DIR = STATIC_DIR / "temp"


def ensure_directories():
    """Ensure all necessary directories exist."""
    for directory in [STATIC_DIR, IMAGES_DIR, TEMP_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


def generate_secure_filename(original_filename: str, field_name: str = "image") -> str:
    """Generate a randomized filename, prefixed by the form field it came from."""
    _, ext = os.path.splitext((original_filename or "").lower())

    if ext not in ALLOWED_EXTENSIONS:
        ext = '.jpg'

    return f"{field_name}_{uuid.uuid4().hex}{ext}"


def validate_image_file(file_path: str) -> bool:
    """Validate that the file is actually a valid image (JPG or PNG)."""
    try:
        with Image.open(file_path) as img:
            if img.format not in ['JPEG', 'PNG']:
                return False

            if img.width > 10000 or img.height > 10000:
                return False

            return True
    except (UnidentifiedImageError, OSError):
        return False


async def save_upload_file_securely(file, field_name: str = "image") -> Optional[str]:
    """
    Save an uploaded image under IMAGES_DIR.

    Returns the generated filename, or None when the content is not a valid
    image. Raises ValueError when the file exceeds MAX_FILE_SIZE.
    """
    ensure_directories()
    secure_filename = generate_secure_filename(file.filename, field_name)
    temp_path = TEMP_DIR / secure_filename

    try:
        content = await file.read()
        if len(content) > MAX_FILE_SIZE:
            raise ValueError(f"File size exceeds maximum allowed size of {MAX_FILE_SIZE / (1024 * 1024)}MB")

        async with aiofiles.open(temp_path, 'wb') as buffer:
            await buffer.write(content)

        if not validate_image_file(str(temp_path)):
            temp_path.unlink()
            return None

        final_path = IMAGES_DIR / secure_filename
        shutil.move(str(temp_path), str(final_path))
        logger.info(f"Stored upload {secure_filename} ({len(content)} bytes)")
        return secure_filename

    finally:
        if temp_path.exists():
            temp_path.unlink()


def cleanup_temp_files():
    """Clean up temporary files left behind by interrupted uploads."""
    if TEMP_DIR.exists():
        for file_path in TEMP_DIR.glob("*"):
            if file_path.is_file():
                try:
                    file_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove temp file {file_path}: {e}")


def remove_image(filename: Optional[str]):
    """Delete a stored image, e.g. when the record it belonged to was rejected."""
    if not filename:
        return
    path = IMAGES_DIR / Path(filename).name
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove image {path}: {e}")
