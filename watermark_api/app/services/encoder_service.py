from PIL import Image
import io
import logging
from typing import Callable, Sequence

from app.core.exceptions import EncodeError
from app.models.image import EncodeAttempt, EncodeResult, ImageFormat

logger = logging.getLogger(__name__)

# Accept up to 50% growth over the original upload
MAX_SIZE_RATIO = 1.5

DEFAULT_QUALITY_LADDER = (95, 92, 88, 85)
# Conversions from unknown formats stay on the high-quality side
CONVERSION_QUALITY_LADDER = (95, 90, 85, 80)

# At or above this quality WEBP and TIFF switch to their lossless modes
LOSSLESS_QUALITY_THRESHOLD = 90


def _save(img: Image.Image, **params) -> bytes:
    buffer = io.BytesIO()
    try:
        img.save(buffer, **params)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise EncodeError(f"{params.get('format')} encoder rejected image: {e}") from e
    return buffer.getvalue()


def _flatten_to_rgb(img: Image.Image) -> Image.Image:
    if img.mode == "RGB":
        return img
    if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info:
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def search_quality(encode: Callable[[int], bytes], ladder: Sequence[int], original_size: int) -> EncodeAttempt:
    """
    Walk `ladder` from highest to lowest quality and return the first attempt
    whose size stays within MAX_SIZE_RATIO of the original. When nothing
    qualifies, the highest-quality attempt wins to preserve fidelity.
    """
    if not ladder:
        raise ValueError("Quality ladder must not be empty")

    first_attempt = None
    for quality in ladder:
        buffer = encode(quality)
        size = len(buffer)
        size_ratio = size / original_size if original_size else float("inf")
        attempt = EncodeAttempt(quality=quality, buffer=buffer, size=size, size_ratio=size_ratio)

        logger.info(f"Quality {quality}: {size/1024:.1f}KB ({size_ratio*100:.0f}% of original)")

        if first_attempt is None:
            first_attempt = attempt
        if size_ratio <= MAX_SIZE_RATIO:
            logger.info(f"Using quality {quality} - good size/quality balance")
            return attempt

    logger.info("All options result in large files, using highest quality to preserve image fidelity")
    return first_attempt


class ImageEncoder:
    """One output format: how to encode at a quality, and which ladder to walk."""

    format: ImageFormat
    content_type: str
    quality_ladder: Sequence[int] = DEFAULT_QUALITY_LADDER

    def encode(self, img: Image.Image, quality: int | None = None) -> bytes:
        raise NotImplementedError

    def encode_within_budget(self, img: Image.Image, original_size: int) -> EncodeResult:
        attempt = search_quality(lambda q: self.encode(img, q), self.quality_ladder, original_size)
        return EncodeResult(
            buffer=attempt.buffer,
            format=self.format,
            content_type=self.content_type,
            size_ratio=attempt.size_ratio,
            quality=attempt.quality,
        )


class JpegEncoder(ImageEncoder):
    format = ImageFormat.JPEG
    content_type = "image/jpeg"

    def encode(self, img, quality=None):
        return _save(
            _flatten_to_rgb(img),
            format="JPEG",
            quality=quality or self.quality_ladder[0],
            progressive=True,
            optimize=True,
        )


class WebpEncoder(ImageEncoder):
    format = ImageFormat.WEBP
    content_type = "image/webp"

    def encode(self, img, quality=None):
        quality = quality or self.quality_ladder[0]
        return _save(
            img,
            format="WEBP",
            quality=quality,
            method=6,
            lossless=quality >= LOSSLESS_QUALITY_THRESHOLD,
        )


class PngEncoder(ImageEncoder):
    format = ImageFormat.PNG
    content_type = "image/png"
    quality_ladder = ()
    fallback_compress_level = 8

    def encode(self, img, quality=None):
        # optimize=True runs zlib at level 9; the palette is never reduced
        return _save(img, format="PNG", optimize=True)

    def encode_fallback(self, img):
        return _save(img, format="PNG", compress_level=self.fallback_compress_level)

    def encode_within_budget(self, img, original_size):
        try:
            buffer = self.encode(img)
            logger.info(f"PNG optimized: {len(buffer)/1024:.1f}KB")
        except EncodeError as e:
            logger.warning(f"PNG optimization failed, using standard compression: {e}")
            buffer = self.encode_fallback(img)

        return EncodeResult(
            buffer=buffer,
            format=self.format,
            content_type=self.content_type,
            size_ratio=len(buffer) / original_size if original_size else float("inf"),
        )


class TiffEncoder(ImageEncoder):
    format = ImageFormat.TIFF
    content_type = "image/tiff"

    def encode(self, img, quality=None):
        quality = quality or self.quality_ladder[0]
        if quality >= LOSSLESS_QUALITY_THRESHOLD:
            return _save(img, format="TIFF", compression="tiff_lzw")
        return _save(_flatten_to_rgb(img), format="TIFF", compression="jpeg", quality=quality)


class ConversionJpegEncoder(JpegEncoder):
    """Unknown source formats are re-encoded as high-quality JPEG."""
    format = ImageFormat.OTHER
    quality_ladder = CONVERSION_QUALITY_LADDER


ENCODERS = {
    ImageFormat.JPEG: JpegEncoder(),
    ImageFormat.WEBP: WebpEncoder(),
    ImageFormat.PNG: PngEncoder(),
    ImageFormat.TIFF: TiffEncoder(),
    ImageFormat.OTHER: ConversionJpegEncoder(),
}


def get_encoder(image_format: ImageFormat) -> ImageEncoder:
    encoder = ENCODERS.get(image_format)
    if encoder is None:
        logger.info(f"Unknown format {image_format}, converting to high-quality JPEG")
        encoder = ENCODERS[ImageFormat.OTHER]
    return encoder


def encode_image(img: Image.Image, image_format: ImageFormat, original_size: int) -> EncodeResult:
    """Encode the composited image in its source format, keeping close to `original_size`."""
    encoder = get_encoder(image_format)
    result = encoder.encode_within_budget(img, original_size)

    size_change = (result.size - original_size) / original_size * 100 if original_size else 0.0
    logger.info(
        f"Final watermarked image: {result.size/1024:.1f}KB "
        f"({'+' if size_change > 0 else ''}{size_change:.1f}% size change)"
    )
    return result
