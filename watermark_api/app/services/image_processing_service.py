from PIL import Image, ImageOps
import io
import logging
import math

from app.core.config import settings
from app.core.exceptions import FallbackError, WatermarkError
from app.models.image import EncodeResult, ImageAsset
from app.models.schemas import WatermarkOptions
from app.services.encoder_service import encode_image
from app.services.logo_service import LogoStore, logo_store
from app.services.metadata_service import load_base_image, probe_image
from app.services.watermark_service import compose_watermark

logger = logging.getLogger(__name__)

# Shrink fallback tuning
SIZE_BLOWUP_FACTOR = 2.0
MIN_WATERMARK_PERCENT = 8.0
MIN_OPACITY = 0.15
SIZE_SHRINK_FACTOR = 0.7
OPACITY_SHRINK_FACTOR = 0.9

THUMBNAIL_QUALITY = 85
THUMBNAIL_WATERMARK_OPTIONS = WatermarkOptions(opacity=0.4, max_size_percent=25, margin=5)


def should_watermark(content_type: str | None) -> bool:
    """Allow-list gate callers apply before handing bytes to the pipeline."""
    if not content_type:
        return False
    mime_type = content_type.split(";")[0].strip().lower()
    return mime_type in settings.allowed_content_types


def max_fallback_attempts(initial_percent: float) -> int:
    """Retries needed to walk `initial_percent` down to the 8% floor."""
    if initial_percent <= MIN_WATERMARK_PERCENT:
        return 0
    return math.ceil(math.log(MIN_WATERMARK_PERCENT / initial_percent) / math.log(SIZE_SHRINK_FACTOR))


def shrink_options(options: WatermarkOptions) -> WatermarkOptions:
    return options.model_copy(update={
        "max_size_percent": max(MIN_WATERMARK_PERCENT, options.max_size_percent * SIZE_SHRINK_FACTOR),
        "opacity": max(MIN_OPACITY, options.opacity * OPACITY_SHRINK_FACTOR),
    })


class ImageProcessingService:
    def __init__(self, logo_store: LogoStore):
        self.logo_store = logo_store

    def encode_watermarked_image(self, image_bytes: bytes, options: WatermarkOptions | None = None) -> bytes:
        return self.watermark_image(image_bytes, options).buffer

    def watermark_image(self, image_bytes: bytes, options: WatermarkOptions | None = None) -> EncodeResult:
        """
        Watermark `image_bytes` and re-encode them in their own format.

        When the output still comes out more than twice the original size, the
        watermark is shrunk (size x0.7, opacity x0.9) and the pipeline re-run,
        at most until the size reaches the 8% floor. The smallest result wins.
        Decode and compositing errors on the first pass are fatal.
        """
        options = options or WatermarkOptions()
        asset = probe_image(image_bytes)
        base_img = load_base_image(asset)

        best = self._render(asset, base_img, options)
        latest, current = best, options

        for attempt in range(1, max_fallback_attempts(options.max_size_percent) + 1):
            if latest.size <= asset.byte_length * SIZE_BLOWUP_FACTOR:
                break
            if current.max_size_percent <= MIN_WATERMARK_PERCENT:
                break

            current = shrink_options(current)
            logger.warning(
                f"File size increased significantly ({latest.size/1024:.1f}KB), trying smaller watermark "
                f"(attempt {attempt}: {current.max_size_percent:.1f}%, opacity {current.opacity:.2f})"
            )
            try:
                latest = self._render_fallback(asset, base_img, current)
            except FallbackError as e:
                logger.warning(f"{e}; using previous result")
                break

            if latest.size < best.size:
                logger.info(f"Smaller watermark reduced size to {latest.size/1024:.1f}KB")
                best = latest

        return best

    def _render(self, asset: ImageAsset, base_img: Image.Image, options: WatermarkOptions) -> EncodeResult:
        logo = self.logo_store.get_logo()
        composited = compose_watermark(base_img, logo, options)
        return encode_image(composited, asset.format, asset.byte_length)

    def _render_fallback(self, asset, base_img, options) -> EncodeResult:
        try:
            return self._render(asset, base_img, options)
        except WatermarkError as e:
            raise FallbackError(f"Smaller watermark optimization failed: {e}") from e

    def create_thumbnail(self, image_bytes: bytes, size: int = 150, add_watermark: bool = False) -> bytes:
        """Square, center-cropped JPEG thumbnail, optionally watermarked."""
        asset = probe_image(image_bytes)
        img = load_base_image(asset)

        thumbnail = ImageOps.fit(img.convert("RGB"), (size, size), Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        buffer = io.BytesIO()
        thumbnail.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
        thumbnail_bytes = buffer.getvalue()

        if add_watermark:
            try:
                thumbnail_bytes = self.encode_watermarked_image(thumbnail_bytes, THUMBNAIL_WATERMARK_OPTIONS)
            except WatermarkError as e:
                # the plain thumbnail is still useful
                logger.error(f"Error adding watermark to thumbnail: {str(e)}")

        return thumbnail_bytes

image_processing_service = ImageProcessingService(logo_store)


def encode_watermarked_image(image_bytes: bytes, options: WatermarkOptions | None = None) -> bytes:
    return image_processing_service.encode_watermarked_image(image_bytes, options)
