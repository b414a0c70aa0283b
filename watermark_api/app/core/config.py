from pathlib import Path
from pydantic_settings import BaseSettings

DEFAULT_LOGO_PATH = Path(__file__).resolve().parent.parent / "assets" / "watermark_logo.png"

class Settings(BaseSettings):
    # AWS Configuration (Media Store)
    aws_id: str = ""
    aws_secret: str = ""
    aws_s3_bucket: str = ""
    region: str = "us-east-1"

    # API Configuration
    api_title: str = "Watermark API"
    api_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Request Limits
    max_file_size: int = 50 * 1024 * 1024  # 50MB
    allowed_content_types: list = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/tiff",
    ]
    processing_timeout: float = 30.0  # seconds per image
    concurrency_limit: int = 5

    # Watermark Configuration
    watermark_logo_path: str = str(DEFAULT_LOGO_PATH)
    upload_folder: str = "watermarked-images"
    thumbnail_size: int = 150

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

settings = Settings()
