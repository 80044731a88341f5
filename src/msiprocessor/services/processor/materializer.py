"""Download objects to local storage for tools that need a file path."""

import logging
import os
import shutil
import tempfile
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from msiprocessor.services.processor.exceptions import MaterializationError
from msiprocessor.services.processor.models import RecordStage, UploadRecord
from msiprocessor.services.processor.s3_client import S3Client

logger = logging.getLogger(__name__)


class LocalMaterializer:
    """Writes each record's object into its own directory under a storage root.

    Records never share a directory, so concurrent records with the same
    key (or the same key in different buckets) cannot collide.
    """

    def __init__(self, s3_client: S3Client, storage_dir: str = "/tmp", keep_files: bool = False):
        """Initialize materializer.

        Args:
            s3_client: Client used to stream the object
            storage_dir: Root directory for per-record work directories
            keep_files: Leave files in place after the pipeline finishes
        """
        self.s3_client = s3_client
        self.storage_dir = Path(storage_dir)
        self.keep_files = keep_files

    def local_path_for(self, work_dir: Path, key: str) -> Path:
        """Resolve the local path for an object key inside a work directory.

        The file is named after the key's basename.

        Raises:
            MaterializationError: If the key has no usable file name
        """
        base_path = os.path.abspath(work_dir)
        file_name = key.rsplit("/", 1)[-1]
        target_path = os.path.abspath(os.path.join(base_path, file_name))
        if (
            file_name in ("", ".", "..")
            or os.path.commonpath([base_path, target_path]) != base_path
            or target_path == base_path
        ):
            raise MaterializationError(f"Unsafe object key for local storage: {key!r}")
        return Path(target_path)

    def _create_work_dir(self, record: UploadRecord) -> Path:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{record.bucket}-", dir=self.storage_dir))

    async def materialize(self, record: UploadRecord) -> UploadRecord:
        """Download the record's object and attach the local path.

        local_path is set only after the stream has been fully written
        and the file closed.

        Raises:
            MaterializationError: On unsafe key, S3 stream or filesystem failure
        """
        try:
            work_dir = self._create_work_dir(record)
        except OSError as e:
            raise MaterializationError(f"Failed to create work directory under {self.storage_dir}: {e}") from e

        try:
            destination = self.local_path_for(work_dir, record.key)
            size_bytes = await self.s3_client.download_to_file(record.bucket, record.key, destination)
        except MaterializationError:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error(
                f"Failed to materialize {record.key}: {e}",
                extra={"object_key": record.key, "work_dir": str(work_dir), "error": str(e)}
            )
            shutil.rmtree(work_dir, ignore_errors=True)
            raise MaterializationError(f"Failed to download {record.ref.s3_uri}: {e}") from e

        record.work_dir = work_dir
        record.local_path = destination
        record.stage = RecordStage.MATERIALIZED
        logger.info(
            "Object materialized",
            extra={"object_key": record.key, "local_path": str(destination), "size_bytes": size_bytes}
        )
        return record

    async def cleanup(self, record: UploadRecord) -> None:
        """Remove the record's work directory, if any."""
        if self.keep_files or record.work_dir is None:
            return
        try:
            shutil.rmtree(record.work_dir)
            logger.debug(
                "Removed materialized files",
                extra={"work_dir": str(record.work_dir)}
            )
        except OSError as e:
            logger.warning(
                f"Failed to remove materialized files: {e}",
                extra={"work_dir": str(record.work_dir), "error": str(e)}
            )
