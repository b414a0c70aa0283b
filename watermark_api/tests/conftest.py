import io

import pytest
from PIL import Image

from app.services.image_processing_service import ImageProcessingService
from app.services.logo_service import LogoStore


def _noise(size):
    return Image.merge("RGB", [Image.effect_noise(size, 60) for _ in range(3)])


def _gradient(size):
    img = Image.linear_gradient("L").resize(size)
    return Image.merge("RGB", (img, img.rotate(90).resize(size), Image.new("L", size, 90)))


@pytest.fixture
def make_image():
    """Build an in-memory image: make_image(size, mode='RGB', noise=False)."""
    def factory(size=(400, 300), mode="RGB", noise=False):
        img = _noise(size) if noise else _gradient(size)
        if mode == "RGBA":
            img = img.convert("RGBA")
            img.putalpha(Image.linear_gradient("L").resize(size))
        elif mode != "RGB":
            img = img.convert(mode)
        return img
    return factory


@pytest.fixture
def make_image_bytes(make_image):
    """make_image_bytes(format, size, mode, noise, **save_params) -> encoded bytes"""
    def factory(fmt="JPEG", size=(400, 300), mode="RGB", noise=False, **save_params):
        img = make_image(size, mode, noise)
        buffer = io.BytesIO()
        img.save(buffer, format=fmt, **save_params)
        return buffer.getvalue()
    return factory


@pytest.fixture
def logo():
    # 200x100: opaque red left half, transparent right half
    img = Image.new("RGBA", (200, 100), (0, 0, 0, 0))
    img.paste(Image.new("RGBA", (100, 100), (220, 30, 30, 255)), (0, 0))
    return img


@pytest.fixture
def logo_path(tmp_path, logo):
    path = tmp_path / "logo.png"
    logo.save(path, format="PNG")
    return str(path)


@pytest.fixture
def logo_store(logo_path):
    return LogoStore(logo_path)


@pytest.fixture
def service(logo_store):
    return ImageProcessingService(logo_store)
