import pytest

from app.core.exceptions import DecodeError
from app.models.image import ImageFormat
from app.services.metadata_service import load_base_image, probe_image


@pytest.mark.parametrize("fmt, expected", [
    ("JPEG", ImageFormat.JPEG),
    ("PNG", ImageFormat.PNG),
    ("WEBP", ImageFormat.WEBP),
    ("TIFF", ImageFormat.TIFF),
    ("BMP", ImageFormat.OTHER),
    ("GIF", ImageFormat.OTHER),
])
def test_probe_reports_dimensions_and_format(make_image_bytes, fmt, expected):
    data = make_image_bytes(fmt, size=(320, 200))

    asset = probe_image(data)

    assert (asset.width, asset.height) == (320, 200)
    assert asset.format == expected
    assert asset.byte_length == len(data)
    assert asset.data is data


def test_probe_rejects_empty_input():
    with pytest.raises(DecodeError):
        probe_image(b"")


def test_probe_rejects_garbage():
    with pytest.raises(DecodeError):
        probe_image(b"definitely not an image" * 10)


def test_truncated_pixels_fail_on_full_decode(make_image_bytes):
    data = make_image_bytes("JPEG", size=(600, 600), noise=True, quality=95)
    truncated = data[: len(data) // 2]

    asset = probe_image(truncated)
    with pytest.raises(DecodeError):
        load_base_image(asset)


def test_pillow_format_mapping():
    assert ImageFormat.from_pillow("MPO") == ImageFormat.JPEG
    assert ImageFormat.from_pillow("PNG") == ImageFormat.PNG
    assert ImageFormat.from_pillow("ICO") == ImageFormat.OTHER
    assert ImageFormat.from_pillow(None) == ImageFormat.OTHER
