"""
Upload Processor Service

Processes objects uploaded to S3: classifies them by extension, resolves
their SHA-256 checksum, reads MSI revision numbers, signs CloudFront links
and e-mails the result through SES.
"""

from msiprocessor.services.processor.classifier import FileType, classify_object_key
from msiprocessor.services.processor.models import (
    BatchResult,
    RecordOutcome,
    UploadEvent,
    UploadRecord,
)

__all__ = [
    "BatchResult",
    "RecordOutcome",
    "UploadEvent",
    "UploadRecord",
    "FileType",
    "classify_object_key",
]
