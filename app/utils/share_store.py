"""Share metadata store.

Share records live inside the bucket they grant access to, one JSON object
per share under ``SHARE_METADATA_PREFIX``. No separate database: deleting the
bucket deletes its shares, and deleting a record is the revocation.

``ShareStore`` is the seam; anything satisfying it (a real database, the
in-memory store in the tests) can replace ``S3ShareStore`` without touching
the manager or the gateway.
"""

from __future__ import annotations

import uuid
from typing import Callable, List, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from app.models import ShareRecord
from app.settings import SHARE_METADATA_PREFIX
from app.utils.errors import NotFoundError, StorageError
from app.utils.logger import logger
from app.utils.s3_client import (
    NOT_FOUND_CODES,
    S3ClientFactory,
    S3Credentials,
    client_error_code,
    client_error_message,
    create_s3_client,
)

ShareMutator = Callable[[ShareRecord], ShareRecord]


class ShareStore(Protocol):
    async def put(self, bucket: str, record: ShareRecord) -> None: ...

    async def get(self, bucket: str, share_id: str) -> ShareRecord: ...

    async def delete(self, bucket: str, share_id: str) -> None: ...

    async def list(self, bucket: str) -> List[ShareRecord]: ...

    async def update(self, bucket: str, share_id: str, mutator: ShareMutator) -> ShareRecord: ...


ShareStoreFactory = Callable[[S3Credentials], ShareStore]


def is_valid_share_id(share_id: str) -> bool:
    try:
        return str(uuid.UUID(share_id)) == share_id.lower()
    except (ValueError, AttributeError, TypeError):
        return False


def share_object_key(share_id: str) -> str:
    """Object key for a share; ids are UUIDs so the key cannot escape the prefix."""
    if not is_valid_share_id(share_id):
        raise NotFoundError("share_not_found")
    return f"{SHARE_METADATA_PREFIX}{share_id}.json"


def _storage_error(exc: Exception) -> StorageError:
    if isinstance(exc, ClientError):
        return StorageError(client_error_message(exc), code=client_error_code(exc) or None)
    return StorageError(str(exc) or type(exc).__name__)


class S3ShareStore:
    """``ShareStore`` backed by the bucket's own object storage."""

    def __init__(self, credentials: S3Credentials, client_factory: S3ClientFactory = create_s3_client) -> None:
        self._credentials = credentials
        self._client_factory = client_factory

    async def put(self, bucket: str, record: ShareRecord) -> None:
        key = share_object_key(record.id)
        try:
            async with self._client_factory(self._credentials) as s3:
                await s3.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=record.to_json().encode("utf-8"),
                    ContentType="application/json",
                )
        except (ClientError, BotoCoreError) as exc:
            raise _storage_error(exc) from exc

    async def get(self, bucket: str, share_id: str) -> ShareRecord:
        key = share_object_key(share_id)
        try:
            async with self._client_factory(self._credentials) as s3:
                return await self._read(s3, bucket, key, share_id)
        except ClientError as exc:
            if client_error_code(exc) in NOT_FOUND_CODES:
                raise NotFoundError("share_not_found") from exc
            raise _storage_error(exc) from exc
        except BotoCoreError as exc:
            raise _storage_error(exc) from exc

    async def delete(self, bucket: str, share_id: str) -> None:
        if not is_valid_share_id(share_id):
            return  # nothing can exist under a malformed id
        key = share_object_key(share_id)
        try:
            async with self._client_factory(self._credentials) as s3:
                await s3.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if client_error_code(exc) in NOT_FOUND_CODES:
                return
            raise _storage_error(exc) from exc
        except BotoCoreError as exc:
            raise _storage_error(exc) from exc

    async def list(self, bucket: str) -> List[ShareRecord]:
        records: List[ShareRecord] = []
        try:
            async with self._client_factory(self._credentials) as s3:
                kwargs = {"Bucket": bucket, "Prefix": SHARE_METADATA_PREFIX}
                while True:
                    page = await s3.list_objects_v2(**kwargs)
                    for obj in page.get("Contents") or []:
                        key = obj.get("Key", "")
                        share_id = key[len(SHARE_METADATA_PREFIX):].removesuffix(".json")
                        try:
                            records.append(await self._read(s3, bucket, key, share_id))
                        except (ClientError, BotoCoreError, NotFoundError) as exc:
                            # one unreadable record must not hide the others
                            logger.warning(
                                "share.store.skip",
                                extra={"extra": {"bucket": bucket, "key": key, "error": type(exc).__name__}},
                            )
                    if not page.get("IsTruncated") or not page.get("NextContinuationToken"):
                        break
                    kwargs["ContinuationToken"] = page["NextContinuationToken"]
        except (ClientError, BotoCoreError) as exc:
            raise _storage_error(exc) from exc
        return records

    async def update(self, bucket: str, share_id: str, mutator: ShareMutator) -> ShareRecord:
        # Read-then-write without a lock: concurrent updates race, last writer wins.
        record = await self.get(bucket, share_id)
        updated = mutator(record)
        await self.put(bucket, updated)
        return updated

    async def _read(self, s3, bucket: str, key: str, share_id: str) -> ShareRecord:
        resp = await s3.get_object(Bucket=bucket, Key=key)
        body = await resp["Body"].read()
        if not body:
            raise NotFoundError("share_not_found")
        try:
            record = ShareRecord.model_validate_json(body)
        except ValidationError as exc:
            raise NotFoundError("share_not_found") from exc
        if record.id != share_id:
            raise NotFoundError("share_not_found")
        return record


def s3_share_store_factory(client_factory: S3ClientFactory) -> ShareStoreFactory:
    def _factory(credentials: S3Credentials) -> ShareStore:
        return S3ShareStore(credentials, client_factory)

    return _factory
