"""Revision number extraction from MSI files using exiftool."""

import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

from msiprocessor.services.processor.exceptions import MetadataExtractionError, ValidationError
from msiprocessor.services.processor.models import RecordStage, UploadRecord

logger = logging.getLogger(__name__)


class ExifToolClient:
    """Runs the exiftool binary and reads tags from its JSON output."""

    def __init__(self, executable: str = "exiftool", timeout_seconds: int = 30):
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    async def read_revision_number(self, file_path: Path) -> Optional[str]:
        """Read the RevisionNumber summary-information tag of a file.

        Args:
            file_path: Path to the local file

        Returns:
            The revision number, or None if the file has no such tag

        Raises:
            MetadataExtractionError: If exiftool cannot be run or its output cannot be parsed
        """
        cmd = [
            self.executable,
            "-json",
            "-RevisionNumber",
            str(file_path),
        ]

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("exiftool timeout", extra={"file_path": str(file_path)})
            raise MetadataExtractionError("Metadata extraction timed out") from e
        except OSError as e:
            logger.error(
                "Failed to run exiftool",
                extra={"file_path": str(file_path), "executable": self.executable, "error": str(e)},
            )
            raise MetadataExtractionError(f"Unable to run {self.executable}: {e}") from e

        if result.returncode != 0:
            raise MetadataExtractionError(f"exiftool failed: {result.stderr.strip()}")

        try:
            tags = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(
                "Failed to parse exiftool output",
                extra={"file_path": str(file_path), "error": str(e)},
            )
            raise MetadataExtractionError(f"Failed to parse metadata: {e}") from e

        # exiftool prints one object per input file
        if not isinstance(tags, list) or not tags or not isinstance(tags[0], dict):
            raise MetadataExtractionError("Unexpected exiftool output format")

        revision_number = tags[0].get("RevisionNumber")
        if revision_number is None or not str(revision_number).strip():
            return None
        return str(revision_number).strip()


class RevisionExtractor:
    """Pipeline stage attaching the MSI revision number to a record."""

    def __init__(self, exiftool: ExifToolClient):
        self.exiftool = exiftool

    async def extract_revision(self, record: UploadRecord) -> UploadRecord:
        """Attach the revision number read from the materialized file.

        Raises:
            ValidationError: If the record has not been materialized
            MetadataExtractionError: If the tool fails or the file has no revision number
        """
        if record.local_path is None or not str(record.local_path):
            raise ValidationError(f"No local file for {record.ref.s3_uri}")

        revision_number = await self.exiftool.read_revision_number(record.local_path)
        if revision_number is None:
            logger.warning(
                "Revision Number not found in metadata",
                extra={"object_key": record.key, "local_path": str(record.local_path)},
            )
            raise MetadataExtractionError(f"Revision Number not found in metadata of {record.key}")

        record.revision_number = revision_number
        record.stage = RecordStage.METADATA_EXTRACTED
        logger.info(
            "Revision number extracted",
            extra={"object_key": record.key, "revision_number": revision_number},
        )
        return record
