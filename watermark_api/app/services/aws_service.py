import asyncio
import boto3
import functools
import uuid
from botocore.exceptions import BotoCoreError, ClientError
from typing import Tuple
from fastapi import HTTPException
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

class AWSService:
    def __init__(self):
        self.s3_client = boto3.client(
            's3',
            aws_access_key_id=settings.aws_id or None,
            aws_secret_access_key=settings.aws_secret or None,
            region_name=settings.region
        )
        self.bucket_name = settings.aws_s3_bucket

    def _object_url(self, s3_key: str) -> str:
        return f"https://{self.bucket_name}.s3.{settings.region}.amazonaws.com/{s3_key}"

    def _get_object(self, s3_key: str) -> Tuple[bytes, str]:
        response = self.s3_client.get_object(Bucket=self.bucket_name, Key=s3_key)
        return response['Body'].read(), response.get('ContentType', '')

    async def download_file(self, s3_key: str) -> Tuple[bytes, str]:
        """Resolve a media id (S3 key) to its bytes and stored content type."""
        loop = asyncio.get_event_loop()
        try:
            # boto3 blocks; keep it off the event loop
            content, content_type = await loop.run_in_executor(None, self._get_object, s3_key)
            logger.info(f"Downloaded {s3_key} from S3 ({len(content)/1024:.1f}KB, {content_type})")
            return content, content_type
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in ('NoSuchKey', '404'):
                raise HTTPException(status_code=404, detail=f"Media not found: {s3_key}")
            logger.error(f"Failed to download file from S3: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to download file: {str(e)}")
        except BotoCoreError as e:
            logger.error(f"Failed to download file from S3: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to download file: {str(e)}")

    async def upload_file(self, file_content: bytes, file_extension: str, folder_path: str = "watermarked-images",
                          content_type: str | None = None) -> str:
        """Upload bytes to S3 under a new unique name in `folder_path`"""
        filename = f"{uuid.uuid4()}{file_extension}"
        clean_folder = folder_path.strip("/")
        s3_key = f"{clean_folder}/{filename}"
        return await self.replace_file(s3_key, file_content, content_type or f"image/{file_extension[1:]}")

    async def replace_file(self, s3_key: str, file_content: bytes, content_type: str) -> str:
        """Write bytes to an exact key, overwriting whatever is stored there"""
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, functools.partial(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=file_content,
                ContentType=content_type
            ))
            s3_url = self._object_url(s3_key)
            logger.info(f"Successfully uploaded file to S3: {s3_url}")
            return s3_url
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload file to S3: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to upload file: {str(e)}")

aws_service = AWSService()
