"""Custom exceptions for the upload processing pipeline."""


class ProcessorException(Exception):
    """Base exception for the processing pipeline."""
    pass


class ValidationError(ProcessorException):
    """Exception raised when a required field is missing or malformed."""
    pass


class ChecksumUnavailableError(ProcessorException):
    """Exception raised when the checksum backfill copy returns no checksum."""
    pass


class MaterializationError(ProcessorException):
    """Exception raised when an object cannot be written to local storage."""
    pass


class MetadataExtractionError(ProcessorException):
    """Exception raised when the metadata tool fails or finds no revision number."""
    pass


class SigningError(ProcessorException):
    """Exception raised when the signed link cannot be generated."""
    pass


class DispatchError(ProcessorException):
    """Exception raised when the notification transport rejects a message."""
    pass


class ConfigurationError(ProcessorException):
    """Exception raised when required process configuration is missing."""
    pass
