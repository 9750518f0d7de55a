"""Reference asset loading for generation requests"""

import logging
import os
from io import BytesIO
from typing import Any, Dict, Optional, Union

import requests
from PIL import Image, UnidentifiedImageError

from models.generation import ReferenceAsset

logger = logging.getLogger("AssetProcessor")

FORMAT_MIME_TYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def fetch_asset_bytes(asset_url: str, timeout: int = 30) -> bytes:
    try:
        response = requests.get(asset_url, timeout=timeout)
        response.raise_for_status()
        return response.content
    except requests.RequestException as e:
        logger.error(f"Failed to fetch asset from {asset_url}: {e}")
        raise


def get_image_metadata(image_bytes: bytes) -> Dict[str, Any]:
    """Extract width, height, format from image bytes"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return {
                "width": img.width,
                "height": img.height,
                "format": img.format
            }
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Failed to extract image metadata: {e}")
        return {"width": None, "height": None, "format": None}


def load_reference_asset(
    source: Union[str, bytes],
    name: Optional[str] = None,
) -> ReferenceAsset:
    """Load a conditioning image from a URL, file path or raw bytes.

    Raises ValueError when the data is not a decodable PNG/JPEG/WebP/GIF.
    """
    if isinstance(source, bytes):
        data = source
        name = name or "reference.png"
    elif source.startswith(("http://", "https://")):
        data = fetch_asset_bytes(source)
        name = name or os.path.basename(source.split("?", 1)[0]) or "reference"
    else:
        if not os.path.exists(source):
            raise FileNotFoundError(source)
        with open(source, "rb") as f:
            data = f.read()
        name = name or os.path.basename(source)

    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            image_format = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Reference asset '{name}' is not a readable image: {e}")

    mime_type = FORMAT_MIME_TYPES.get(image_format or "")
    if mime_type is None:
        raise ValueError(
            f"Reference asset '{name}' has unsupported format {image_format}. "
            f"Supported formats: {', '.join(FORMAT_MIME_TYPES)}"
        )

    logger.debug(f"Loaded reference asset {name} ({len(data)}B, {mime_type})")
    return ReferenceAsset(name=name, data=data, mime_type=mime_type)
