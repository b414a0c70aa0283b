from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import ValidationError
from typing import Optional
import asyncio
import json
import logging
import time

from app.core.config import settings
from app.models.image import EncodeResult
from app.models.schemas import (
    WatermarkBatchItem,
    WatermarkBatchRequest,
    WatermarkBatchResponse,
    WatermarkOptions,
)
from app.services.aws_service import aws_service
from app.services.image_processing_service import image_processing_service, should_watermark

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/watermark", tags=["watermark"])

OPTIONS_HEADER = "x-watermark-options"

# --- HELPER: Parse JSON options override ---
def parse_watermark_options(raw: Optional[str]) -> WatermarkOptions:
    if not raw:
        return WatermarkOptions()
    try:
        return WatermarkOptions.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid watermark options: {str(e)}")

# --- HELPER: Gate uploaded bytes before the pipeline sees them ---
def validate_image_upload(content_type: Optional[str], size: int):
    if not content_type or not content_type.lower().startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")
    if not should_watermark(content_type):
        raise HTTPException(status_code=400, detail="File type not supported for watermarking")
    if size == 0:
        raise HTTPException(status_code=400, detail="Empty file")
    if size > settings.max_file_size:
        raise HTTPException(status_code=413, detail="File too large")

# --- HELPER: Run CPU-bound image work off the event loop, under the timeout ---
async def run_with_timeout(func, *args):
    loop = asyncio.get_event_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, func, *args),
            timeout=settings.processing_timeout,
        )
    except asyncio.TimeoutError:
        logger.error(f"Watermarking timed out after {settings.processing_timeout}s")
        raise HTTPException(status_code=504, detail="Watermark processing timed out")


async def run_watermark(image_bytes: bytes, options: WatermarkOptions) -> EncodeResult:
    return await run_with_timeout(image_processing_service.watermark_image, image_bytes, options)


@router.post("/preview")
async def preview_watermark(request: Request):
    """
    Watermark the raw request body and stream it back in its own format.
    Options override the defaults through the X-Watermark-Options JSON header.
    """
    logger.info("Watermark preview request received")
    content_type = request.headers.get("content-type", "")
    body = await request.body()

    validate_image_upload(content_type, len(body))
    options = parse_watermark_options(request.headers.get(OPTIONS_HEADER))

    result = await run_watermark(body, options)
    return Response(
        content=result.buffer,
        media_type=result.content_type,
        headers={
            "X-Size-Ratio": f"{result.size_ratio:.3f}",
            "X-Watermark-Quality": str(result.quality) if result.quality is not None else "lossless",
        },
    )


@router.post("/thumbnail")
async def create_thumbnail(
    request: Request,
    size: int = Query(settings.thumbnail_size, ge=16, le=1024, description="Edge length in pixels"),
    watermark: bool = Query(False, description="Add the watermark to the thumbnail")
):
    content_type = request.headers.get("content-type", "")
    body = await request.body()
    validate_image_upload(content_type, len(body))

    thumbnail = await run_with_timeout(image_processing_service.create_thumbnail, body, size, watermark)
    return Response(content=thumbnail, media_type="image/jpeg")


@router.post("/batch", response_model=WatermarkBatchResponse)
async def batch_watermark(batch: WatermarkBatchRequest):
    """
    Watermark stored media in place. Each id is processed independently;
    one failure never aborts the rest of the batch.
    """
    logger.info(f"Batch watermark request received for {len(batch.media_ids)} files")
    start_time = time.time()
    semaphore = asyncio.Semaphore(settings.concurrency_limit)

    async def process_media(media_id: str) -> WatermarkBatchItem:
        async with semaphore:
            try:
                content, content_type = await aws_service.download_file(media_id)
                validate_image_upload(content_type, len(content))
                result = await run_watermark(content, batch.watermark_options)
                await aws_service.replace_file(media_id, result.buffer, result.content_type)
                return WatermarkBatchItem(
                    media_id=media_id,
                    success=True,
                    original_size=len(content),
                    watermarked_size=result.size,
                )
            except HTTPException as e:
                logger.error(f"Batch item {media_id} failed: {e.detail}")
                return WatermarkBatchItem(media_id=media_id, success=False, error=str(e.detail))
            except Exception as e:
                logger.error(f"Batch item {media_id} failed: {str(e)}")
                return WatermarkBatchItem(media_id=media_id, success=False, error=str(e))

    results = await asyncio.gather(*[process_media(media_id) for media_id in batch.media_ids])

    successful = sum(1 for r in results if r.success)
    return WatermarkBatchResponse(
        total_files=len(results),
        successful=successful,
        failed=len(results) - successful,
        results=results,
        processing_time=time.time() - start_time,
        message=f"Processed {len(results)} files",
    )
