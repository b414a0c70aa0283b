class WatermarkError(Exception):
    """Base class for failures inside the watermarking pipeline."""
    status_code = 500


class DecodeError(WatermarkError):
    """Input bytes are empty, corrupt, unsupported or have no dimensions."""
    status_code = 400


class CompositingError(WatermarkError):
    """Logo asset is missing/unreadable or the composite itself failed."""


class EncodeError(WatermarkError):
    """An encoder rejected the composited image."""


class FallbackError(WatermarkError):
    """A shrink-and-retry attempt failed. Always handled inside the pipeline."""
