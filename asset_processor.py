"""File validation and thumbnail generation for staged property media"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from errors import DecodeError, InvalidExtension, TooLarge, ValidationError
from models.asset import ImageMetadata

logger = logging.getLogger("AssetProcessor")

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp", "gif"})
DOCUMENT_EXTENSIONS = frozenset({"pdf", "doc", "docx", "jpg", "jpeg", "png"})

DEFAULT_THUMBNAIL_DIM = 200
DEFAULT_THUMBNAIL_QUALITY = 80  # 0.8 on the canvas encoder scale


@dataclass(frozen=True)
class ValidationPolicy:
    """Extension whitelist and size cap applied to candidate files"""
    allowed_extensions: FrozenSet[str] = field(default=IMAGE_EXTENSIONS)
    max_bytes: int = DEFAULT_MAX_BYTES

    @classmethod
    def build(cls, allowed_extensions: Iterable[str], max_bytes: int = DEFAULT_MAX_BYTES) -> "ValidationPolicy":
        normalized = frozenset(ext.strip().lstrip(".").lower() for ext in allowed_extensions if ext.strip())
        return cls(allowed_extensions=normalized, max_bytes=int(max_bytes))


IMAGE_POLICY = ValidationPolicy(IMAGE_EXTENSIONS, DEFAULT_MAX_BYTES)
DOCUMENT_POLICY = ValidationPolicy(DOCUMENT_EXTENSIONS, DEFAULT_MAX_BYTES)


def file_extension(file_name: str) -> str:
    _, ext = os.path.splitext(file_name)
    return ext[1:].lower()


def validate_file(file_name: str, byte_length: int, policy: ValidationPolicy) -> Optional[ValidationError]:
    """Check a candidate file against the policy.

    Returns None when the file is acceptable, otherwise the rejection
    (InvalidExtension or TooLarge). Never raises.
    """
    extension = file_extension(file_name)
    if extension not in policy.allowed_extensions:
        return InvalidExtension(file_name, extension, policy.allowed_extensions)
    if byte_length > policy.max_bytes:
        return TooLarge(file_name, byte_length, policy.max_bytes)
    return None


def get_image_metadata(image_bytes: bytes) -> Dict[str, Any]:
    """Extract width, height, format from image bytes"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return {
                "width": img.width,
                "height": img.height,
                "format": img.format
            }
    except Exception as e:
        logger.warning(f"Failed to extract image metadata: {e}")
        return {"width": None, "height": None, "format": None}


def thumbnail_size(width: int, height: int, max_dim: int) -> Tuple[int, int]:
    """Proportional size whose longer side is max_dim, never upscaled"""
    if width <= max_dim and height <= max_dim:
        return width, height
    if width > height:
        return max_dim, max(1, int(height * (max_dim / width)))
    return max(1, int(width * (max_dim / height))), max_dim


@dataclass(frozen=True)
class Thumbnail:
    data: bytes
    size_px: Tuple[int, int]
    mime_type: str = "image/jpeg"


def create_thumbnail(
    image_bytes: bytes,
    max_dim: int = DEFAULT_THUMBNAIL_DIM,
    quality: int = DEFAULT_THUMBNAIL_QUALITY,
) -> Thumbnail:
    """Create downscaled thumbnail, re-encode as JPEG"""
    try:
        with Image.open(BytesIO(image_bytes)) as loaded:
            img = ImageOps.exif_transpose(loaded)
            # JPEG has no alpha channel; flatten onto white
            if img.mode in ("RGBA", "LA", "P"):
                if img.mode == "P":
                    img = img.convert("RGBA")
                background = Image.new("RGB", img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[-1])
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")

            new_size = thumbnail_size(img.width, img.height, max_dim)
            if new_size != img.size:
                img = img.resize(new_size, Image.Resampling.LANCZOS)

            output = BytesIO()
            img.save(output, format="JPEG", quality=quality, optimize=True)
            return Thumbnail(data=output.getvalue(), size_px=img.size)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode image for thumbnail: {e}") from e


async def render_thumbnail(
    image_bytes: bytes,
    max_dim: int = DEFAULT_THUMBNAIL_DIM,
    quality: int = DEFAULT_THUMBNAIL_QUALITY,
) -> Thumbnail:
    """Render a thumbnail off the event loop; raises DecodeError"""
    return await asyncio.to_thread(create_thumbnail, image_bytes, max_dim, quality)


_EXTENSION_RE = re.compile(r"\.[^/.]+$")


def generate_image_metadata(
    file_name: str,
    position: int,
    property_title: str = "",
    property_code: str = "",
) -> ImageMetadata:
    """Build SEO alt/title text for a newly staged image.

    position is the 1-based slot the image will occupy in the gallery.
    """
    base_name = _EXTENSION_RE.sub("", file_name)
    if property_title:
        code_part = f" ({property_code})" if property_code else ""
        alt_text = f"{property_title}{code_part} - {base_name}"
    else:
        alt_text = f"Imagen {position} de la propiedad"
    return ImageMetadata(alt_text=alt_text, title=property_title or base_name)
