"""
Document storage adapters.

Role-change and certification documents are written to object storage and
referenced from workflow rows by URL. Two backends share one interface:

    - LocalDocumentStorage: files under a directory, for development/tests
    - S3DocumentStorage:    boto3 put/delete against a bucket

Any backend failure is raised as DocumentUploadError so the caller can
name the failing document in its user-facing message.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from rentflow.core.exceptions import DocumentUploadError

logger = logging.getLogger(__name__)


def build_document_key(user_id: str, document_type: str, filename: str, now: datetime) -> str:
    """``{user_id}_{document_type}_{epoch_ms}.{ext}``; ext from the uploaded filename."""
    ext = ""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].strip().lower()
    epoch_ms = int(now.timestamp() * 1000)
    return f"{user_id}_{document_type}_{epoch_ms}.{ext or 'bin'}"


class DocumentStorage:
    """Interface implemented by every storage backend."""

    def upload(self, key: str, data: bytes, content_type: str, document_type: str = "") -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def key_from_url(self, url: str) -> str:
        """Inverse of ``url_for``; used when compensating stored uploads."""
        return url.rsplit("/", 1)[-1]


class LocalDocumentStorage(DocumentStorage):
    def __init__(self, root: str, base_url: str = "/documents"):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def _path(self, key: str) -> str:
        # Keys are flat file names; refuse anything that could escape root
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise DocumentUploadError(key or "?", "invalid storage key")
        return os.path.join(self.root, key)

    def upload(self, key, data, content_type, document_type=""):
        path = self._path(key)
        try:
            os.makedirs(self.root, exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            logger.error("Local upload failed for %s: %s", key, exc)
            raise DocumentUploadError(document_type or key, str(exc)) from exc
        logger.debug("Stored document %s (%d bytes, %s)", key, len(data), content_type)
        return self.url_for(key)

    def delete(self, key):
        path = self._path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Document already absent: %s", key)
        except OSError as exc:
            logger.error("Local delete failed for %s: %s", key, exc)
            raise DocumentUploadError(key, str(exc)) from exc

    def url_for(self, key):
        return f"{self.base_url}/{key}"

    def exists(self, key) -> bool:
        return os.path.exists(self._path(key))


class S3DocumentStorage(DocumentStorage):
    """S3 (or S3-compatible, via ``endpoint_url``) document bucket."""

    def __init__(self, bucket: str, region: str | None = None, endpoint_url: str | None = None, client=None):
        if not bucket:
            raise ValueError("S3DocumentStorage requires a bucket name")
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.client = client or boto3.client(
            "s3",
            config=BotoConfig(
                region_name=region,
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                connect_timeout=10,
                read_timeout=60,
            ),
            endpoint_url=endpoint_url,
        )
        logger.info("S3DocumentStorage initialized: region=%s, bucket=%s", region, bucket)

    def upload(self, key, data, content_type, document_type=""):
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to upload s3://%s/%s: %s", self.bucket, key, exc, exc_info=True)
            raise DocumentUploadError(document_type or key, str(exc)) from exc
        return self.url_for(key)

    def delete(self, key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                logger.warning("S3 object already deleted: s3://%s/%s", self.bucket, key)
                return
            logger.error("Failed to delete s3://%s/%s: %s", self.bucket, key, exc, exc_info=True)
            raise DocumentUploadError(key, str(exc)) from exc
        except BotoCoreError as exc:
            raise DocumentUploadError(key, str(exc)) from exc
        logger.info("Deleted S3 object: s3://%s/%s", self.bucket, key)

    def url_for(self, key):
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"


def storage_from_config(config) -> DocumentStorage:
    """Build the configured backend from a Flask config mapping."""
    backend = (config.get("DOCUMENT_STORAGE_BACKEND") or "local").lower()
    if backend == "s3":
        return S3DocumentStorage(
            bucket=config.get("DOCUMENT_BUCKET"),
            region=config.get("AWS_REGION"),
            endpoint_url=config.get("S3_ENDPOINT_URL"),
        )
    if backend != "local":
        raise ValueError(f"Unknown DOCUMENT_STORAGE_BACKEND: {backend!r}")
    return LocalDocumentStorage(
        root=os.path.join(config.get("DOCUMENT_LOCAL_DIR"), config.get("DOCUMENT_BUCKET", "")),
        base_url=config.get("DOCUMENT_PUBLIC_BASE_URL", "/documents"),
    )
