"""
Notification e-mail composition.

One variant per file type:
- UNKNOWN: tells the receiver the upload is not a supported type
- ZIP: carries the signed link
- MSI: carries the signed link, checksum, revision number, OMA-URI and an
  MsiInstallJob XML manifest as attachment

Composition is pure: it reads the record and returns a message, no I/O.
"""

import html
import re
import xml.etree.ElementTree as ET
from email.message import EmailMessage
from email.policy import SMTP
from typing import Callable, Dict

from msiprocessor.services.processor.classifier import FileType
from msiprocessor.services.processor.exceptions import ValidationError
from msiprocessor.services.processor.models import RecordStage, UploadRecord

SUBJECT_PREFIX = "[S3 MSI Processor]"
OMA_URI_TEMPLATE = "./Device/Vendor/MSFT/EnterpriseDesktopAppManagement/MSI/{revision}/DownloadInstall"

# Enforcement policy for the MSI install job
INSTALL_COMMAND_LINE = "/quiet /norestart"
INSTALL_TIMEOUT_MINUTES = 5
INSTALL_RETRY_COUNT = 3
INSTALL_RETRY_INTERVAL_MINUTES = 5


def encode_revision_number(revision_number: str) -> str:
    """Percent-encode the braces of a revision GUID for use in an OMA-URI."""
    return revision_number.replace("{", "%7B").replace("}", "%7D")


def build_oma_uri(revision_number: str) -> str:
    """Device-management URI of the MSI DownloadInstall node for a revision."""
    return OMA_URI_TEMPLATE.format(revision=encode_revision_number(revision_number))


def manifest_filename(key: str) -> str:
    """Attachment name for an MSI key: its basename with .msi replaced by .xml."""
    basename = key.rsplit("/", 1)[-1]
    return re.sub(r"\.msi$", ".xml", basename, flags=re.IGNORECASE)


def build_install_manifest(content_url: str, file_hash: str) -> str:
    """Build the MsiInstallJob XML for an MSI download.

    The content URL is XML-escaped, so '&' in a signed URL becomes '&amp;'.

    Args:
        content_url: Signed URL the device downloads the MSI from
        file_hash: Hex SHA-256 of the MSI, validated by the device

    Returns:
        The manifest as an indented XML string
    """
    job = ET.Element("MsiInstallJob", {"id": ""})
    product = ET.SubElement(job, "Product", {"Version": "1.0.0"})

    download = ET.SubElement(product, "Download")
    url_list = ET.SubElement(download, "ContentURLList")
    ET.SubElement(url_list, "ContentURL").text = content_url

    enforcement = ET.SubElement(product, "Enforcement")
    ET.SubElement(enforcement, "CommandLine").text = INSTALL_COMMAND_LINE
    ET.SubElement(enforcement, "TimeOut").text = str(INSTALL_TIMEOUT_MINUTES)
    ET.SubElement(enforcement, "RetryCount").text = str(INSTALL_RETRY_COUNT)
    ET.SubElement(enforcement, "RetryInterval").text = str(INSTALL_RETRY_INTERVAL_MINUTES)

    validation = ET.SubElement(product, "Validation")
    ET.SubElement(validation, "FileHash").text = file_hash

    ET.indent(job, space="  ")
    return ET.tostring(job, encoding="unicode")


class MessageComposer:
    """Builds the notification e-mail for a processed record."""

    def __init__(self, sender: str, receiver: str):
        self.sender = sender
        self.receiver = receiver
        self._variants: Dict[FileType, Callable[[UploadRecord], EmailMessage]] = {
            FileType.UNKNOWN: self._compose_unknown,
            FileType.ZIP: self._compose_zip,
            FileType.MSI: self._compose_msi,
        }

    async def compose(self, record: UploadRecord) -> UploadRecord:
        """Attach the message for the record's file type.

        Raises:
            ValidationError: If a field required by the variant is missing, or the
                key contains line breaks that cannot go into a header
        """
        if "\r" in record.key or "\n" in record.key:
            raise ValidationError(f"Object key {record.key!r} contains a line break")
        variant = self._variants.get(record.file_type)
        if variant is None:
            raise ValidationError(f"No message variant for file type {record.file_type!r}")
        record.message = variant(record)
        record.stage = RecordStage.MESSAGE_COMPOSED
        return record

    def _new_message(self, subject: str) -> EmailMessage:
        msg = EmailMessage(policy=SMTP)
        msg["From"] = self.sender
        msg["To"] = self.receiver
        msg["Subject"] = f"{SUBJECT_PREFIX} {subject}"
        return msg

    def _compose_unknown(self, record: UploadRecord) -> EmailMessage:
        msg = self._new_message(f"Unsupported filetype for file: {record.key}")
        msg.set_content(
            "Hello,\n\n"
            f"I'm sorry but the file {record.key} is not supported.  "
            "Only objects of type .MSI and .ZIP are supported.\n\n"
            "Thank you.\n"
        )
        msg.add_alternative(
            "Hello,<br><br>"
            f"I'm sorry but the file <b>{html.escape(record.key)}</b> is not supported. "
            "Only objects of type .MSI and .ZIP are supported.<br><br>"
            "Thank you.",
            subtype="html",
        )
        return msg

    def _compose_zip(self, record: UploadRecord) -> EmailMessage:
        if record.signed_link is None:
            raise ValidationError(f"Signed link missing for {record.key}")
        url = record.signed_link.url

        msg = self._new_message(f"Signed URL for {record.key}")
        msg.set_content(
            "Hello,\n\n"
            f"The signed URL for the file {record.key} is below:\n\n"
            f"{url}\n\n"
            "Thank you.\n"
        )
        msg.add_alternative(
            "Hello,<br><br>"
            f"The signed URL for the file <b>{html.escape(record.key)}</b> is below:<br><br>"
            f"{html.escape(url)}<br><br>"
            "Thank you.",
            subtype="html",
        )
        return msg

    def _compose_msi(self, record: UploadRecord) -> EmailMessage:
        missing = [
            name for name, value in (
                ("checksum_sha256", record.checksum_sha256),
                ("revision_number", record.revision_number),
                ("signed_link", record.signed_link),
            )
            if not value
        ]
        if missing:
            raise ValidationError(f"Missing {', '.join(missing)} for {record.key}")

        url = record.signed_link.url
        checksum = record.checksum_sha256
        revision = record.revision_number
        encoded_revision = encode_revision_number(revision)
        oma_uri = build_oma_uri(revision)
        filename = manifest_filename(record.key)

        msg = self._new_message(f"Signed URL and XML file for {record.key}")
        msg.set_content(
            "Hello,\n\n"
            f"The properties for the file {record.key} are below:\n"
            f"  ChecksumSHA256: {checksum}\n"
            f"  RevisionNumber: {revision}\n"
            f"  OMA-URI: {oma_uri}\n"
            f"  Signed URL: {url}\n\n"
            f"The MSI Install XML file {filename} is attached.\n\n"
            "Thank you.\n"
        )
        msg.add_alternative(
            "Hello,<br><br>"
            f"The properties for the file <b>{html.escape(record.key)}</b> are below:<br>"
            "<ul>"
            f"<li><b>ChecksumSHA256:</b> {checksum}</li>"
            f"<li><b>RevisionNumber:</b> {html.escape(revision)}</li>"
            f"<li><b>Encoded Revision Number:</b> {html.escape(encoded_revision)}</li>"
            f"<li><b>OMA-URI:</b> {html.escape(oma_uri)}</li>"
            f"<li><b>Signed URL:</b> {html.escape(url)}</li>"
            "</ul><br>"
            f"The MSI Install XML file <b>{html.escape(filename)}</b> is attached.<br><br>"
            "Thank you.",
            subtype="html",
        )
        msg.add_attachment(
            build_install_manifest(url, checksum).encode("utf-8"),
            maintype="text",
            subtype="xml",
            filename=filename,
            cte="base64",
        )
        return msg
