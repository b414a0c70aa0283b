from fastapi import APIRouter, UploadFile, File, Form, HTTPException
from typing import List, Optional
import time
import asyncio
import logging
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn

from app.core.config import settings
from app.core.exceptions import WatermarkError
from app.models.schemas import BulkUploadResponse, ImageUploadResponse
from app.routers.watermark import parse_watermark_options, run_watermark, validate_image_upload
from app.services.aws_service import aws_service

console = Console()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/upload", tags=["upload"])

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
}

# --- HELPER: Watermark + Store one file ---
async def process_standard_file(file: UploadFile, options, directory, progress, overall_task):
    task_id = progress.add_task("Waiting...", total=3, visible=False)
    try:
        progress.update(task_id, visible=True, description=f"🔄 Reading: {file.filename}")

        content = await file.read()
        validate_image_upload(file.content_type, len(content))

        progress.update(task_id, advance=1, description=f"💧 Watermarking: {file.filename}")

        # 1. Watermark + re-encode in the original format
        result = await run_watermark(content, options)
        extension = CONTENT_TYPE_EXTENSIONS.get(result.content_type, ".jpg")

        progress.update(task_id, advance=1, description="☁️ Uploading...")

        # 2. Upload
        s3_url = await aws_service.upload_file(result.buffer, extension, folder_path=directory,
                                               content_type=result.content_type)

        progress.update(task_id, advance=1, visible=False)
        progress.advance(overall_task)

        return ImageUploadResponse(
            filename=file.filename or "",
            s3_url=s3_url,
            watermarked=True,
            content_type=result.content_type,
            original_size=len(content),
            watermarked_size=result.size,
        )
    except (HTTPException, WatermarkError) as e:
        progress.update(task_id, visible=False)
        progress.advance(overall_task)
        error = e.detail if isinstance(e, HTTPException) else str(e)
        console.print(f"[red]Failed {file.filename}: {error}[/red]")
        return ImageUploadResponse(filename=file.filename or "", s3_url="", watermarked=False, error=str(error))
    except Exception as e:
        progress.update(task_id, visible=False)
        progress.advance(overall_task)
        logger.error(f"Upload of {file.filename} failed: {str(e)}")
        return ImageUploadResponse(filename=file.filename or "", s3_url="", watermarked=False, error=str(e))
    finally:
        await file.close()


@router.post("/single", response_model=ImageUploadResponse)
async def upload_single_image(
    file: UploadFile = File(..., description="Select an image"),
    watermark_options: Optional[str] = Form(None, description="JSON watermark options (optional)"),
    directory: str = Form(settings.upload_folder)
):
    options = parse_watermark_options(watermark_options)
    with Progress(SpinnerColumn(), TextColumn("[bold blue]{task.description}"), BarColumn(), console=console) as progress:
        task = progress.add_task("Single Upload", total=1)
        return await process_standard_file(file, options, directory, progress, task)

@router.post("/bulk", response_model=BulkUploadResponse)
async def bulk_upload_images(
    files: List[UploadFile] = File(..., description="Select multiple images"),
    watermark_options: Optional[str] = Form(None, description="JSON watermark options (optional)"),
    directory: str = Form(settings.upload_folder)
):
    start_time = time.time()
    options = parse_watermark_options(watermark_options)
    semaphore = asyncio.Semaphore(settings.concurrency_limit)

    async def sem_task(file):
        async with semaphore: return await process_standard_file(file, options, directory, progress, overall_task)

    with Progress(SpinnerColumn(), TextColumn("[bold blue]{task.description}"), BarColumn(), TextColumn("[progress.percentage]{task.percentage:>3.0f}%"), console=console) as progress:
        overall_task = progress.add_task("[green]Batch Processing...", total=len(files))
        tasks = [sem_task(file) for file in files]
        results = await asyncio.gather(*tasks)

    successful = sum(1 for r in results if r.watermarked)
    return BulkUploadResponse(total_files=len(files), successful_uploads=successful, failed_uploads=len(results)-successful, results=results, processing_time=time.time()-start_time)
