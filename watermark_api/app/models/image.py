from dataclasses import dataclass
from enum import Enum


class ImageFormat(str, Enum):
    JPEG = "jpeg"
    WEBP = "webp"
    PNG = "png"
    TIFF = "tiff"
    OTHER = "other"

    @classmethod
    def from_pillow(cls, name: str | None) -> "ImageFormat":
        """Map a Pillow format name (e.g. 'JPEG', 'MPO') onto the closed set."""
        if not name:
            return cls.OTHER
        name = name.lower()
        if name in ("jpeg", "jpg", "mpo"):
            return cls.JPEG
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class ImageAsset:
    data: bytes
    width: int
    height: int
    format: ImageFormat
    byte_length: int
    source_format: str | None = None


@dataclass(frozen=True)
class WatermarkLayout:
    width: int
    height: int
    left: int
    top: int


@dataclass(frozen=True)
class EncodeAttempt:
    quality: int | None
    buffer: bytes
    size: int
    size_ratio: float


@dataclass(frozen=True)
class EncodeResult:
    buffer: bytes
    format: ImageFormat
    content_type: str
    size_ratio: float
    quality: int | None = None

    @property
    def size(self) -> int:
        return len(self.buffer)
