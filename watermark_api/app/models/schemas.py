from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum


class Anchor(str, Enum):
    BOTTOM_RIGHT = "bottom-right"
    BOTTOM_LEFT = "bottom-left"
    TOP_RIGHT = "top-right"
    TOP_LEFT = "top-left"
    CENTER = "center"


class WatermarkOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    opacity: float = Field(0.3, gt=0, le=1)
    # "position" and "maxSize" are the keys older clients still send
    anchor: Anchor = Field(
        Anchor.BOTTOM_RIGHT,
        validation_alias=AliasChoices("anchor", "position"),
    )
    margin: int = Field(20, ge=0)
    max_size_percent: float = Field(
        15,
        ge=8,
        le=100,
        validation_alias=AliasChoices("max_size_percent", "maxSizePercent", "maxSize"),
    )


class WatermarkBatchRequest(BaseModel):
    media_ids: List[str] = Field(
        ..., min_length=1, validation_alias=AliasChoices("media_ids", "mediaIds")
    )
    watermark_options: WatermarkOptions = Field(
        default_factory=WatermarkOptions,
        validation_alias=AliasChoices("watermark_options", "watermarkOptions"),
    )


class WatermarkBatchItem(BaseModel):
    media_id: str
    success: bool
    error: Optional[str] = None
    original_size: Optional[int] = None
    watermarked_size: Optional[int] = None


class WatermarkBatchResponse(BaseModel):
    total_files: int
    successful: int
    failed: int
    results: List[WatermarkBatchItem]
    processing_time: float
    message: str


class ImageUploadResponse(BaseModel):
    filename: str
    s3_url: str
    watermarked: bool
    content_type: Optional[str] = None
    original_size: Optional[int] = None
    watermarked_size: Optional[int] = None
    error: Optional[str] = None


class BulkUploadResponse(BaseModel):
    total_files: int
    successful_uploads: int
    failed_uploads: int
    results: List[ImageUploadResponse]
    processing_time: float


class HealthCheckResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    logo_loaded: bool
