"""S3 service for study material storage."""

import asyncio
import time
from urllib.parse import quote
from uuid import UUID

import boto3
from botocore.exceptions import ClientError

from studyworkspace.config import get_settings

settings = get_settings()


class StorageError(Exception):
    """Raised when an object storage operation fails."""


class S3Service:
    """Service for storing uploaded materials in S3."""

    def __init__(self):
        """Initialize S3 client with credentials from settings."""
        client_kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
            "region_name": settings.aws_s3_region,
        }
        # Support MinIO / LocalStack by pointing to a custom endpoint
        if settings.aws_s3_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self.bucket = settings.aws_s3_bucket

    @staticmethod
    def build_key(workspace_id: UUID, filename: str) -> str:
        """Object key: workspaces/{workspaceId}/{epochMillis}_{originalFileName}."""
        return f"workspaces/{workspace_id}/{int(time.time() * 1000)}_{filename}"

    def public_url(self, file_key: str) -> str:
        """Public URL of an object in the configured bucket."""
        if settings.aws_s3_endpoint_url:
            return f"{settings.aws_s3_endpoint_url.rstrip('/')}/{self.bucket}/{quote(file_key)}"
        return f"https://{self.bucket}.s3.{settings.aws_s3_region}.amazonaws.com/{quote(file_key)}"

    async def upload_file(self, file_key: str, file_data: bytes, content_type: str) -> str:
        """
        Upload a file directly to S3 (server-side upload).

        Args:
            file_key: S3 object key (path) for the file
            file_data: Raw bytes of the file
            content_type: MIME type stored on the object

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=file_key,
                Body=file_data,
                ContentType=content_type,
            )
        except ClientError as e:
            raise StorageError(f"Failed to upload file to S3: {str(e)}") from e
        return self.public_url(file_key)

    async def delete_file(self, file_key: str) -> None:
        """
        Delete a file from S3.

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object, Bucket=self.bucket, Key=file_key
            )
        except ClientError as e:
            raise StorageError(f"Failed to delete file from S3: {str(e)}") from e


# Singleton instance
s3_service = S3Service()
