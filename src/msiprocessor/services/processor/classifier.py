"""
File type classifier for uploaded objects.

Classifies objects by the extension of their key (case-insensitive):
- MSI: Windows installer packages, processed with checksum, revision and manifest
- ZIP: archives, which only get a signed link
- UNKNOWN: everything else, including keys without an extension
"""

from enum import Enum
from typing import Dict


class FileType(str, Enum):
    """File types for pipeline routing."""

    MSI = "MSI"
    ZIP = "ZIP"
    UNKNOWN = "UNKNOWN"


EXTENSION_TYPE_MAP: Dict[str, FileType] = {
    ".msi": FileType.MSI,
    ".zip": FileType.ZIP,
}


def classify_object_key(key: str) -> FileType:
    """
    Classify an object into a FileType by its key extension.

    Args:
        key: The object key (path within the bucket)

    Returns:
        The FileType for the key

    Examples:
        >>> classify_object_key("file.MSI")
        <FileType.MSI: 'MSI'>
        >>> classify_object_key("dir/sub.Msi")
        <FileType.MSI: 'MSI'>
        >>> classify_object_key("README")
        <FileType.UNKNOWN: 'UNKNOWN'>
    """
    file_name = key.rsplit("/", 1)[-1]
    _, dot, extension = file_name.rpartition(".")
    suffix = f".{extension.lower()}" if dot else ""
    return EXTENSION_TYPE_MAP.get(suffix, FileType.UNKNOWN)


def get_supported_extensions() -> list[str]:
    """
    Get the extensions that have a dedicated pipeline.

    Returns:
        List of lowercase extensions including the leading dot
    """
    return list(EXTENSION_TYPE_MAP.keys())
