from PIL import Image, ImageChops, ImageEnhance
import logging
import math

from app.core.exceptions import CompositingError
from app.models.image import WatermarkLayout
from app.models.schemas import Anchor, WatermarkOptions

logger = logging.getLogger(__name__)

# Slight desaturation keeps the logo from inflating the encoded size
LOGO_SATURATION = 0.8


def compute_layout(base_width: int, base_height: int, logo_width: int, logo_height: int,
                   options: WatermarkOptions) -> WatermarkLayout:
    """Scale the logo to a share of the base width and place it at the anchor."""
    aspect_ratio = logo_height / logo_width

    width = max(1, math.floor(base_width * (options.max_size_percent / 100)))
    height = max(1, math.floor(width * aspect_ratio))

    # Tall logos on short images: shrink to the base height, aspect preserved
    if height > base_height:
        width = max(1, min(base_width, math.floor(base_height / aspect_ratio)))
        height = min(base_height, max(1, math.floor(width * aspect_ratio)))

    margin = options.margin
    anchor = options.anchor
    if anchor == Anchor.BOTTOM_LEFT:
        left, top = margin, base_height - height - margin
    elif anchor == Anchor.TOP_RIGHT:
        left, top = base_width - width - margin, margin
    elif anchor == Anchor.TOP_LEFT:
        left, top = margin, margin
    elif anchor == Anchor.CENTER:
        left = math.floor((base_width - width) / 2)
        top = math.floor((base_height - height) / 2)
    else:
        left, top = base_width - width - margin, base_height - height - margin

    left = min(max(0, left), base_width - width)
    top = min(max(0, top), base_height - height)
    return WatermarkLayout(width=width, height=height, left=left, top=top)


def build_overlay(logo: Image.Image, layout: WatermarkLayout, opacity: float) -> Image.Image:
    """Resize the logo, desaturate it and multiply its alpha by `opacity`."""
    resized = logo.resize((layout.width, layout.height), Image.Resampling.LANCZOS)
    red, green, blue, alpha = resized.split()

    colour = ImageEnhance.Color(Image.merge("RGB", (red, green, blue))).enhance(LOGO_SATURATION)

    opacity_mask = Image.new("L", resized.size, math.floor(255 * opacity))
    alpha = ImageChops.multiply(alpha, opacity_mask)

    overlay = colour.convert("RGBA")
    overlay.putalpha(alpha)
    return overlay


def has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def compose_watermark(base_img: Image.Image, logo: Image.Image, options: WatermarkOptions) -> Image.Image:
    """
    Composite the watermark onto `base_img` with a normal "over" blend.

    Returns a new image in RGBA when the base carried transparency, RGB otherwise.
    """
    if logo is None or not logo.width or not logo.height:
        raise CompositingError("Watermark logo is missing")

    layout = compute_layout(base_img.width, base_img.height, logo.width, logo.height, options)
    logger.info(
        f"Applying watermark {layout.width}x{layout.height} at ({layout.left}, {layout.top}), "
        f"opacity {options.opacity:.2f}"
    )

    try:
        overlay = build_overlay(logo, layout, options.opacity)
        base_rgba = base_img.convert("RGBA")

        transparent_layer = Image.new("RGBA", base_rgba.size, (0, 0, 0, 0))
        transparent_layer.paste(overlay, (layout.left, layout.top))
        composited = Image.alpha_composite(base_rgba, transparent_layer)
    except (OSError, ValueError) as e:
        raise CompositingError(f"Failed to add watermark: {e}") from e

    if has_alpha(base_img):
        return composited
    return composited.convert("RGB")
