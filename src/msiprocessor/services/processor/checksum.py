"""SHA-256 checksum resolution with in-place copy backfill."""

import base64
import binascii
import logging

from botocore.exceptions import BotoCoreError, ClientError

from msiprocessor.services.processor.exceptions import ChecksumUnavailableError
from msiprocessor.services.processor.models import RecordStage, UploadRecord
from msiprocessor.services.processor.s3_client import S3Client

logger = logging.getLogger(__name__)

SHA256_DIGEST_SIZE = 32


def base64_checksum_to_hex(value: str) -> str:
    """Convert an S3 base64 SHA-256 checksum to lowercase hex.

    Args:
        value: Base64 checksum as returned by S3

    Returns:
        64-character lowercase hex digest

    Raises:
        ChecksumUnavailableError: If the value is not a base64 SHA-256 digest
    """
    try:
        digest = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ChecksumUnavailableError(f"Malformed base64 checksum: {value!r}") from e
    if len(digest) != SHA256_DIGEST_SIZE:
        raise ChecksumUnavailableError(
            f"Checksum is {len(digest)} bytes, expected {SHA256_DIGEST_SIZE}"
        )
    return digest.hex()


class ChecksumResolver:
    """Attaches the object's hex SHA-256 to a record.

    Uses the checksum stored with the object when there is one; otherwise
    copies the object onto itself with ChecksumAlgorithm=SHA256 so S3
    computes it.
    """

    def __init__(self, s3_client: S3Client):
        self.s3_client = s3_client

    async def resolve_checksum(self, record: UploadRecord) -> UploadRecord:
        """Resolve the checksum from stored attributes, backfilling if absent.

        Raises:
            ChecksumUnavailableError: If attributes cannot be read or the backfill yields no checksum
        """
        try:
            attributes = await self.s3_client.get_checksum_attributes(record.bucket, record.key)
        except (ClientError, BotoCoreError) as e:
            raise ChecksumUnavailableError(
                f"Unable to read attributes of {record.ref.s3_uri}: {e}"
            ) from e

        record.object_size = attributes.size

        # A composite checksum is a checksum of part checksums, not of the file
        if attributes.checksum_sha256 and attributes.checksum_type != "COMPOSITE":
            record.checksum_sha256 = base64_checksum_to_hex(attributes.checksum_sha256)
            logger.info(
                "Using stored SHA256 checksum",
                extra={"object_key": record.key, "checksum_sha256": record.checksum_sha256}
            )
        else:
            logger.info(
                "No usable SHA256 checksum stored, backfilling with in-place copy",
                extra={"object_key": record.key, "checksum_type": attributes.checksum_type}
            )
            await self.copy_for_checksum(record)

        record.stage = RecordStage.CHECKSUM_RESOLVED
        return record

    async def copy_for_checksum(self, record: UploadRecord) -> UploadRecord:
        """Backfill the checksum by copying the object onto itself.

        Not retried: S3 always returns the checksum when the algorithm is
        requested, so a missing value means something is wrong upstream.

        Raises:
            ChecksumUnavailableError: If the copy fails or returns no checksum
        """
        try:
            checksum = await self.s3_client.copy_with_checksum(record.bucket, record.key)
        except (ClientError, BotoCoreError) as e:
            raise ChecksumUnavailableError(
                f"Checksum backfill copy failed for {record.ref.s3_uri}: {e}"
            ) from e

        if not checksum:
            raise ChecksumUnavailableError(f"Checksum not calculated for {record.ref.s3_uri}")

        record.checksum_sha256 = base64_checksum_to_hex(checksum)
        logger.info(
            "Backfilled SHA256 checksum",
            extra={"object_key": record.key, "checksum_sha256": record.checksum_sha256}
        )
        return record
