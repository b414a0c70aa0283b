from PIL import Image, UnidentifiedImageError
import logging
import threading

from app.core.config import settings
from app.core.exceptions import CompositingError

logger = logging.getLogger(__name__)

class LogoStore:
    """Loads the watermark logo once and hands out the same read-only image."""

    def __init__(self, logo_path: str):
        self.logo_path = logo_path
        self._logo: Image.Image | None = None
        self._lock = threading.Lock()

    def get_logo(self) -> Image.Image:
        if self._logo is None:
            with self._lock:
                if self._logo is None:
                    self._logo = self._load()
        return self._logo

    def is_loaded(self) -> bool:
        return self._logo is not None

    def _load(self) -> Image.Image:
        try:
            with Image.open(self.logo_path) as img:
                logo = img.convert("RGBA")
        except FileNotFoundError as e:
            raise CompositingError(f"Watermark logo not found at {self.logo_path}") from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise CompositingError(f"Watermark logo is unreadable: {e}") from e

        if not logo.width or not logo.height:
            raise CompositingError("Watermark logo has no dimensions")

        logger.info(f"Loaded watermark logo {self.logo_path} ({logo.width}x{logo.height})")
        return logo

logo_store = LogoStore(settings.watermark_logo_path)
