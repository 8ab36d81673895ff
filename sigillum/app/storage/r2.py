"""
S3-compatible object store backend (Cloudflare R2).

Beyond the base capability set this backend issues short-lived presigned
URLs so browsers can upload and download directly, bypassing any request
body limit on the application server, and supports deletion for
temporary upload cleanup.

Failure mapping:
- missing object                    → NotFound (read) / False (exists)
- key already taken on save         → Conflict
- unreachable endpoint, timeouts,
  5xx responses                     → UpstreamUnavailable
- anything else from the store      → InternalError
"""

from __future__ import annotations

import logging
from posixpath import basename

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sigillum.app.config import Settings
from sigillum.app.errors import (
    Conflict,
    InternalError,
    NotFound,
    UpstreamUnavailable,
)
from sigillum.app.storage.base import (
    DEFAULT_DOWNLOAD_URL_TTL,
    DEFAULT_UPLOAD_URL_TTL,
)

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_TAKEN_CODES = {"PreconditionFailed", "ConditionalRequestConflict"}


def _is_missing(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error.get("Code") in _MISSING_CODES or status == 404


def _is_taken(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error.get("Code") in _TAKEN_CODES or status == 412


def _translate(exc: Exception, operation: str, key: str) -> Exception:
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if status is not None and status >= 500:
            return UpstreamUnavailable(
                f"Object store error during {operation} of '{key}'."
            )
        code = exc.response.get("Error", {}).get("Code", "unknown")
        return InternalError(
            f"Object store rejected {operation} of '{key}' ({code})."
        )
    return UpstreamUnavailable(
        f"Object store unreachable during {operation} of '{key}'."
    )


class R2StorageService:
    """Presigned-capable implementation of ``StorageService``."""

    def __init__(self, client, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2StorageService":
        client = boto3.client(
            "s3",
            endpoint_url=settings.r2_endpoint,
            aws_access_key_id=settings.r2_access_key,
            aws_secret_access_key=settings.r2_secret_key.get_secret_value(),
            region_name=settings.r2_region,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )
        return cls(client=client, bucket=settings.r2_bucket)

    # ------------------------------------------------------------------
    # StorageService
    # ------------------------------------------------------------------

    def save(self, data: bytes, key: str) -> str:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=PDF_CONTENT_TYPE,
                IfNoneMatch="*",
            )
        except ClientError as exc:
            if _is_taken(exc):
                raise Conflict(f"Storage key '{key}' is already taken.") from exc
            raise _translate(exc, "save", key) from exc
        except BotoCoreError as exc:
            raise _translate(exc, "save", key) from exc
        return key

    def read(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound(f"No stored object for key '{key}'.") from exc
            raise _translate(exc, "read", key) from exc
        except BotoCoreError as exc:
            raise _translate(exc, "read", key) from exc

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise _translate(exc, "exists", key) from exc
        except BotoCoreError as exc:
            raise _translate(exc, "exists", key) from exc
        return True

    # ------------------------------------------------------------------
    # Presigned capabilities
    # ------------------------------------------------------------------

    def signed_upload_url(
        self,
        key: str,
        ttl: int = DEFAULT_UPLOAD_URL_TTL,
    ) -> str:
        try:
            return self._client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self._bucket,
                    "Key": key,
                    "ContentType": PDF_CONTENT_TYPE,
                },
                ExpiresIn=ttl,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "signed upload", key) from exc

    def signed_download_url(
        self,
        key: str,
        ttl: int = DEFAULT_DOWNLOAD_URL_TTL,
    ) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self._bucket,
                    "Key": key,
                    "ResponseContentType": PDF_CONTENT_TYPE,
                    "ResponseContentDisposition": (
                        f'inline; filename="{basename(key)}"'
                    ),
                },
                ExpiresIn=ttl,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "signed download", key) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "delete", key) from exc
