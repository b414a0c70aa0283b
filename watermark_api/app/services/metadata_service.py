from PIL import Image, UnidentifiedImageError
import io
import logging

from app.core.exceptions import DecodeError
from app.models.image import ImageAsset, ImageFormat

logger = logging.getLogger(__name__)


def probe_image(data: bytes) -> ImageAsset:
    """Read just enough of `data` to learn width, height and format."""
    if not data:
        raise DecodeError("Could not get image dimensions: empty input")
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            source_format = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Could not get image dimensions: {e}") from e

    if not width or not height:
        raise DecodeError("Could not get image dimensions")

    asset = ImageAsset(
        data=data,
        width=width,
        height=height,
        format=ImageFormat.from_pillow(source_format),
        byte_length=len(data),
        source_format=source_format,
    )
    logger.info(f"Original image: {source_format} format, {width}x{height}, {len(data)/1024:.1f}KB")
    return asset


def load_base_image(asset: ImageAsset) -> Image.Image:
    """Fully decode the pixels of a probed asset."""
    try:
        img = Image.open(io.BytesIO(asset.data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Could not decode image: {e}") from e
    return img
