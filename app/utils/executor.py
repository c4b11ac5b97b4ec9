"""Proxied operation executor – the only things a share can do.

Exactly two verbs: list objects and mint a relayed download reference.
Nothing else is implemented here, which is the whole permission model: there
is no code path from a ``ShareContext`` to a write, delete or admin call.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from app.models import (
    CommonPrefix,
    DownloadReferenceResponse,
    ListObjectsOperation,
    ObjectEntry,
    ObjectListing,
    PresignGetOperation,
    ShareContext,
)
from app.settings import DOWNLOAD_URL_TTL_SECONDS, RESERVED_PREFIX
from app.utils.errors import AuthorizationError, StorageError
from app.utils.relay import build_relay_path
from app.utils.s3_client import S3ClientFactory, client_error_code, client_error_message, create_s3_client

MAX_KEYS_LIMIT = 1000


def _is_reserved(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX)


def _as_storage_error(exc: Exception) -> StorageError:
    if isinstance(exc, ClientError):
        return StorageError(client_error_message(exc), code=client_error_code(exc) or None)
    return StorageError(str(exc) or type(exc).__name__)


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class ShareOperationExecutor:
    def __init__(self, client_factory: S3ClientFactory = create_s3_client) -> None:
        self._client_factory = client_factory

    async def execute(
        self,
        context: ShareContext,
        operation: Union[ListObjectsOperation, PresignGetOperation],
    ) -> Union[ObjectListing, DownloadReferenceResponse]:
        if isinstance(operation, ListObjectsOperation):
            return await self.list_objects(
                context,
                prefix=operation.prefix,
                delimiter=operation.delimiter,
                max_keys=operation.max_keys,
                continuation_token=operation.continuation_token,
            )
        if isinstance(operation, PresignGetOperation):
            url = await self.get_download_reference(context, operation.key)
            return DownloadReferenceResponse(url=url)
        raise AuthorizationError("operation_not_allowed")

    async def list_objects(
        self,
        context: ShareContext,
        prefix: str = "",
        delimiter: str = "/",
        max_keys: int = MAX_KEYS_LIMIT,
        continuation_token: Optional[str] = None,
    ) -> ObjectListing:
        """One page of ``ListObjectsV2`` on the share's bucket.

        Continuation tokens pass through untouched. Entries under the
        console-reserved prefix (share metadata) are left out of the page.
        """
        kwargs = {
            "Bucket": context.bucket,
            "Prefix": prefix or "",
            "MaxKeys": max(1, min(int(max_keys), MAX_KEYS_LIMIT)),
        }
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        try:
            async with self._client_factory(context.credentials) as s3:
                data = await s3.list_objects_v2(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _as_storage_error(exc) from exc

        contents = [
            ObjectEntry(
                key=obj["Key"],
                size=obj.get("Size"),
                last_modified=_iso(obj.get("LastModified")),
                etag=obj.get("ETag"),
            )
            for obj in data.get("Contents") or []
            if not _is_reserved(obj.get("Key", ""))
        ]
        prefixes = [
            CommonPrefix(prefix=p["Prefix"])
            for p in data.get("CommonPrefixes") or []
            if not _is_reserved(p.get("Prefix", ""))
        ]
        return ObjectListing(
            contents=contents,
            common_prefixes=prefixes,
            next_continuation_token=data.get("NextContinuationToken"),
            is_truncated=bool(data.get("IsTruncated")),
        )

    async def get_download_reference(self, context: ShareContext, key: str) -> str:
        """Presign a GET and wrap it in a relay path on this origin.

        The presigned URL stays valid for ``DOWNLOAD_URL_TTL_SECONDS`` even
        if the share expires or is revoked in the meantime.
        """
        if not key or _is_reserved(key):
            raise AuthorizationError("invalid_key")

        try:
            async with self._client_factory(context.credentials) as s3:
                presigned = await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": context.bucket, "Key": key},
                    ExpiresIn=DOWNLOAD_URL_TTL_SECONDS,
                )
        except (ClientError, BotoCoreError) as exc:
            raise _as_storage_error(exc) from exc

        return build_relay_path(context.credentials.endpoint, presigned)
