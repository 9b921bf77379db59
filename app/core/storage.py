"""
Object storage on Cloudflare R2 (S3-compatible API via boto3).

Clients upload and download directly through short-lived presigned URLs;
the API only writes objects itself for generated invoice PDFs.
"""

import asyncio
import re
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Optional
from uuid import UUID, uuid4

import boto3
import structlog
from botocore.config import Config

from app.core.config import Settings, get_settings
from app.core.errors import StorageNotConfigured
from app.models.enums import DocumentType

logger = structlog.get_logger()

# Folder under company/{id}/ for each document type
_TYPE_FOLDERS = {
    DocumentType.AGREEMENT_DRAFT: "agreements/draft",
    DocumentType.AGREEMENT_SIGNED: "agreements/signed",
    DocumentType.AGREEMENT_FINAL: "agreements/final",
}

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_file_name(file_name: str) -> str:
    name = _UNSAFE_CHARS.sub("_", PurePosixPath(file_name).name)
    return name or "file"


def file_extension(file_name: str) -> str:
    return PurePosixPath(file_name).suffix.lower()


def generate_file_key(company_id: UUID, document_type: DocumentType, file_name: str) -> str:
    """Build ``company/{id}/{folder}/{uuid}{ext}``; the client file name never reaches the key."""
    folder = _TYPE_FOLDERS.get(DocumentType(document_type), "kyc")
    return f"company/{company_id}/{folder}/{uuid4()}{file_extension(file_name)}"


def invoice_file_key(company_id: UUID, invoice_number: str) -> str:
    return f"invoices/{company_id}/{invoice_number}.pdf"


class ObjectStorage:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client = None

    @property
    def configured(self) -> bool:
        return self.settings.has_r2

    @property
    def bucket(self) -> str:
        return self.settings.r2_bucket_name

    def _s3(self):
        if not self.configured:
            raise StorageNotConfigured("Object storage (R2) is not configured")
        if self._client is None:
            endpoint = (
                self.settings.r2_endpoint
                or f"https://{self.settings.r2_account_id}.r2.cloudflarestorage.com"
            )
            self._client = boto3.client(
                "s3",
                endpoint_url=endpoint,
                aws_access_key_id=self.settings.r2_access_key_id,
                aws_secret_access_key=self.settings.r2_secret_access_key,
                region_name="auto",
                config=Config(signature_version="s3v4"),
            )
        return self._client

    async def presigned_upload_url(self, key: str, content_type: str) -> str:
        return self._s3().generate_presigned_url(
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=self.settings.presigned_url_ttl,
        )

    async def presigned_download_url(self, key: str, filename: Optional[str] = None) -> str:
        params = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{sanitize_file_name(filename)}"'
        return self._s3().generate_presigned_url(
            "get_object",
            Params=params,
            ExpiresIn=self.settings.presigned_url_ttl,
        )

    async def put_object(self, key: str, body: bytes, content_type: str) -> None:
        client = self._s3()
        await asyncio.to_thread(
            client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )
        logger.info("storage.put_object", key=key, size=len(body))


@lru_cache
def get_storage() -> ObjectStorage:
    return ObjectStorage()
