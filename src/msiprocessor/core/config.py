"""Configuration management for the MSI Processor."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from msiprocessor.services.processor.exceptions import ConfigurationError
from msiprocessor.services.processor.models import DEFAULT_SELF_COPY_EVENT_NAMES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    ENV: str = "cloud"
    SERVICE_NAME: str = "msi-processor"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # AWS Configuration
    AWS_REGION: str = "us-east-1"

    # CloudFront link signing
    KEYPAIRID: str = ""
    PRIVATEKEY: str = ""
    EXPDN: int = 3  # Signed link lifetime in years
    LINK_DOMAIN: str = ""  # Empty = use the bucket name as the distribution host

    # Notification addresses
    SENDER: str = ""
    RECEIVER: str = ""

    # Local materialization
    LOCAL_STORAGE_DIR: str = "/tmp"
    KEEP_LOCAL_FILES: bool = False

    # Metadata tool
    EXIFTOOL_PATH: str = "exiftool"
    EXIFTOOL_TIMEOUT_SECONDS: int = 30

    # Event kinds produced by our own checksum backfill copy
    SELF_COPY_EVENT_NAMES: str = ",".join(DEFAULT_SELF_COPY_EVENT_NAMES)

    @property
    def self_copy_event_names(self) -> frozenset[str]:
        """Parse SELF_COPY_EVENT_NAMES into a set."""
        return frozenset(
            name.strip() for name in self.SELF_COPY_EVENT_NAMES.split(",") if name.strip()
        )

    @property
    def private_key_pem(self) -> bytes:
        """PRIVATEKEY as PEM bytes, accepting literal '\\n' from single-line env vars."""
        return self.PRIVATEKEY.replace("\\n", "\n").encode("utf-8")

    def missing_required(self) -> list[str]:
        """Names of required settings that are unset or empty."""
        required = {
            "KEYPAIRID": self.KEYPAIRID,
            "PRIVATEKEY": self.PRIVATEKEY,
            "SENDER": self.SENDER,
            "RECEIVER": self.RECEIVER,
        }
        return [name for name, value in required.items() if not value.strip()]

    def require_processing_config(self) -> None:
        """Fail fast before any record is processed.

        Raises:
            ConfigurationError: If a required value is missing or EXPDN is not positive
        """
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        if self.EXPDN < 1:
            raise ConfigurationError(f"EXPDN must be at least 1 year, got {self.EXPDN}")


# Singleton settings instance
settings = Settings()
