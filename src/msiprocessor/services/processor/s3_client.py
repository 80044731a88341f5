"""Amazon S3 client for checksum resolution and object download."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024  # 1MB chunks


@dataclass(frozen=True)
class ChecksumAttributes:
    """Checksum attributes S3 stored for an object."""

    checksum_sha256: Optional[str]  # base64, as returned by S3
    checksum_type: Optional[str]  # FULL_OBJECT or COMPOSITE
    size: Optional[int]


class S3Client:
    """Async wrapper around the boto3 S3 client.

    boto3 is blocking, so every call runs in the default thread pool.
    """

    def __init__(self, region_name: Optional[str] = None, client: Any = None):
        """Initialize S3 client.

        Args:
            region_name: AWS region for the boto3 client
            client: Pre-built boto3 S3 client (used by tests)
        """
        self.client = client if client is not None else boto3.client("s3", region_name=region_name)

    async def get_checksum_attributes(self, bucket: str, key: str) -> ChecksumAttributes:
        """Fetch the stored SHA-256 checksum and size of an object.

        Args:
            bucket: Bucket name
            key: Object key

        Returns:
            ChecksumAttributes, with checksum_sha256 None when S3 has none

        Raises:
            ClientError: If S3 rejects the request (missing object, access denied)
            BotoCoreError: On transport failures
        """
        try:
            response = await asyncio.to_thread(
                self.client.get_object_attributes,
                Bucket=bucket,
                Key=key,
                ObjectAttributes=["Checksum", "ObjectSize"],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to get attributes for {key}: {e}",
                extra={"bucket": bucket, "object_key": key, "error": str(e)}
            )
            raise

        checksum = response.get("Checksum") or {}
        return ChecksumAttributes(
            checksum_sha256=checksum.get("ChecksumSHA256"),
            checksum_type=checksum.get("ChecksumType"),
            size=response.get("ObjectSize"),
        )

    async def copy_with_checksum(self, bucket: str, key: str) -> Optional[str]:
        """Copy an object onto itself, asking S3 to compute a SHA-256 checksum.

        The copy emits an ObjectCreated:Copy event for the same key.

        Args:
            bucket: Bucket name
            key: Object key

        Returns:
            Base64 SHA-256 from the copy result, or None if S3 returned none

        Raises:
            ClientError: If S3 rejects the copy
            BotoCoreError: On transport failures
        """
        try:
            response = await asyncio.to_thread(
                self.client.copy_object,
                Bucket=bucket,
                Key=key,
                CopySource={"Bucket": bucket, "Key": key},
                ChecksumAlgorithm="SHA256",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Failed to copy {key} for checksum: {e}",
                extra={"bucket": bucket, "object_key": key, "error": str(e)}
            )
            raise

        logger.info(
            f"Copied {key} in place with SHA256 checksum requested",
            extra={"bucket": bucket, "object_key": key}
        )
        return (response.get("CopyObjectResult") or {}).get("ChecksumSHA256")

    async def download_to_file(
        self,
        bucket: str,
        key: str,
        destination: Path,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE
    ) -> int:
        """Stream an object into a local file.

        Returns only after the body is fully drained and the file is closed.

        Args:
            bucket: Bucket name
            key: Object key
            destination: Local file path; parent directory must exist
            chunk_size: Read size for the response stream

        Returns:
            Number of bytes written

        Raises:
            ClientError: If S3 rejects the request
            BotoCoreError: On transport or stream failures
            OSError: If the local file cannot be written
        """
        return await asyncio.to_thread(self._download, bucket, key, destination, chunk_size)

    def _download(self, bucket: str, key: str, destination: Path, chunk_size: int) -> int:
        response = self.client.get_object(Bucket=bucket, Key=key)
        body = response["Body"]
        written = 0
        try:
            with open(destination, "wb") as out_file:
                for chunk in body.iter_chunks(chunk_size=chunk_size):
                    out_file.write(chunk)
                    written += len(chunk)
        finally:
            body.close()

        logger.info(
            f"Downloaded {key} to {destination}",
            extra={"bucket": bucket, "object_key": key, "destination": str(destination), "size_bytes": written}
        )
        return written
