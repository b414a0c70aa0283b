import io

import pytest
from PIL import Image

from app.core.exceptions import EncodeError
from app.models.image import ImageFormat
from app.services.encoder_service import (
    CONVERSION_QUALITY_LADDER,
    DEFAULT_QUALITY_LADDER,
    PngEncoder,
    encode_image,
    get_encoder,
    search_quality,
)


class FakeEncoder:
    """Returns a buffer of a fixed size per quality and records the calls."""

    def __init__(self, sizes):
        self.sizes = sizes
        self.calls = []

    def __call__(self, quality):
        self.calls.append(quality)
        return b"\0" * self.sizes[quality]


def test_search_accepts_first_entry_within_budget():
    encoder = FakeEncoder({95: 200, 92: 160, 88: 140, 85: 100})

    attempt = search_quality(encoder, (95, 92, 88, 85), original_size=100)

    assert attempt.quality == 88
    assert attempt.size == 140
    assert attempt.size_ratio == pytest.approx(1.4)
    assert encoder.calls == [95, 92, 88]


def test_search_accepts_exact_budget_boundary():
    encoder = FakeEncoder({95: 150, 92: 100})

    attempt = search_quality(encoder, (95, 92), original_size=100)

    assert attempt.quality == 95
    assert encoder.calls == [95]


def test_search_falls_back_to_highest_quality_when_nothing_fits():
    encoder = FakeEncoder({95: 400, 92: 300, 88: 250, 85: 151})

    attempt = search_quality(encoder, (95, 92, 88, 85), original_size=100)

    assert attempt.quality == 95
    assert attempt.size == 400
    assert encoder.calls == [95, 92, 88, 85]


def test_search_does_not_assume_sizes_shrink_with_quality():
    # lower quality is larger here; the first qualifying entry still wins
    encoder = FakeEncoder({95: 300, 92: 120, 88: 500, 85: 90})

    attempt = search_quality(encoder, (95, 92, 88, 85), original_size=100)

    assert attempt.quality == 92


def test_search_needs_a_ladder():
    with pytest.raises(ValueError):
        search_quality(FakeEncoder({}), (), original_size=100)


def _decode(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.mark.parametrize("mode", ["RGB", "RGBA"])
def test_png_output_is_pixel_exact(make_image, mode):
    img = make_image((256, 192), mode=mode, noise=True)

    result = encode_image(img, ImageFormat.PNG, original_size=10_000)

    decoded = _decode(result.buffer)
    assert decoded.format == "PNG"
    assert decoded.mode == mode
    assert decoded.tobytes() == img.tobytes()
    assert result.content_type == "image/png"
    assert result.quality is None


def test_png_falls_back_to_lower_compression(make_image, monkeypatch):
    img = make_image((64, 64), mode="RGBA")

    def reject(self, image, quality=None):
        raise EncodeError("optimizer failed")

    monkeypatch.setattr(PngEncoder, "encode", reject)

    result = encode_image(img, ImageFormat.PNG, original_size=1000)

    assert _decode(result.buffer).tobytes() == img.tobytes()


def test_png_fails_when_fallback_also_fails(make_image, monkeypatch):
    def reject(self, image, quality=None):
        raise EncodeError("rejected")

    monkeypatch.setattr(PngEncoder, "encode", reject)
    monkeypatch.setattr(PngEncoder, "encode_fallback", lambda self, image: reject(self, image))

    with pytest.raises(EncodeError):
        encode_image(make_image(), ImageFormat.PNG, original_size=1000)


def test_jpeg_output_is_progressive(make_image):
    img = make_image((300, 200))

    result = encode_image(img, ImageFormat.JPEG, original_size=1)

    decoded = _decode(result.buffer)
    assert decoded.format == "JPEG"
    assert decoded.info.get("progressive")
    assert result.content_type == "image/jpeg"
    # nothing fits a 1 byte budget
    assert result.quality == DEFAULT_QUALITY_LADDER[0]


def test_jpeg_flattens_transparency(make_image):
    result = encode_image(make_image(mode="RGBA"), ImageFormat.JPEG, original_size=100_000)

    assert _decode(result.buffer).mode == "RGB"


def test_webp_high_quality_is_lossless(make_image):
    img = make_image((128, 96), noise=True)

    data = get_encoder(ImageFormat.WEBP).encode(img, 95)

    decoded = _decode(data)
    assert decoded.format == "WEBP"
    assert decoded.convert("RGB").tobytes() == img.tobytes()


def test_webp_lower_quality_is_lossy_and_smaller(make_image):
    img = make_image((128, 96), noise=True)
    encoder = get_encoder(ImageFormat.WEBP)

    assert len(encoder.encode(img, 85)) < len(encoder.encode(img, 95))


def test_tiff_compression_depends_on_quality(make_image):
    img = make_image((128, 96))
    encoder = get_encoder(ImageFormat.TIFF)

    assert _decode(encoder.encode(img, 92)).info["compression"] == "tiff_lzw"
    assert _decode(encoder.encode(img, 88)).info["compression"] == "jpeg"


def test_unknown_formats_convert_to_jpeg(make_image):
    encoder = get_encoder(ImageFormat.OTHER)

    result = encode_image(make_image(mode="RGBA"), ImageFormat.OTHER, original_size=1)

    assert encoder.quality_ladder == CONVERSION_QUALITY_LADDER
    assert result.format == ImageFormat.OTHER
    assert result.content_type == "image/jpeg"
    assert _decode(result.buffer).format == "JPEG"


def test_encoder_rejection_raises_encode_error(make_image, monkeypatch):
    def broken_save(self, fp, format=None, **params):
        raise OSError("encoder error -2")

    monkeypatch.setattr(Image.Image, "save", broken_save)

    with pytest.raises(EncodeError):
        encode_image(make_image(), ImageFormat.JPEG, original_size=1000)
