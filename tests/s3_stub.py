"""In-memory stand-in for the aiobotocore S3 client.

Covers only the calls the share code makes. Every client call is recorded on
``FakeS3.calls`` so tests can assert on pagination and on which verbs a
share context ever reaches.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from botocore.exceptions import ClientError


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class _Body:
    def __init__(self, data: bytes):
        self._data = data

    async def read(self) -> bytes:
        return self._data


class FakeS3:
    """Buckets of ``{key: (body, last_modified)}`` shared by every client."""

    def __init__(self, *buckets: str):
        self.buckets: Dict[str, Dict[str, Tuple[bytes, datetime]]] = {name: {} for name in buckets}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.denied_keys: set[str] = set()
        self.unavailable = False

    # Helpers -----------------------------------------------------------------
    def put(self, bucket: str, key: str, body: bytes = b"data") -> None:
        self.buckets[bucket][key] = (body, datetime(2024, 1, 1, tzinfo=timezone.utc))

    def keys(self, bucket: str) -> List[str]:
        return sorted(self.buckets[bucket])

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def client_factory(self, credentials):  # noqa: ANN001 – matches S3ClientFactory
        return _FakeClient(self, credentials)


class _FakeClient:
    def __init__(self, backend: FakeS3, credentials):  # noqa: ANN001
        self._backend = backend
        self._credentials = credentials

    async def __aenter__(self) -> "_FakeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    # ------------------------------------------------------------------
    def _bucket(self, name: str, operation: str) -> Dict[str, Tuple[bytes, datetime]]:
        self._backend.calls.append((operation, {"Bucket": name}))
        if self._backend.unavailable:
            raise client_error("ServiceUnavailable", operation, "storage is down")
        if self._credentials.access_key_id in self._backend.denied_keys:
            raise client_error("AccessDenied", operation, "Access Denied")
        if name not in self._backend.buckets:
            raise client_error("NoSuchBucket", operation, "The specified bucket does not exist")
        return self._backend.buckets[name]

    async def put_object(self, *, Bucket: str, Key: str, Body: bytes, **_kw) -> Dict[str, Any]:
        bucket = self._bucket(Bucket, "PutObject")
        bucket[Key] = (bytes(Body), datetime.now(timezone.utc))
        return {"ETag": f'"{hashlib.md5(Body).hexdigest()}"'}

    async def get_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]:
        bucket = self._bucket(Bucket, "GetObject")
        if Key not in bucket:
            raise client_error("NoSuchKey", "GetObject", "The specified key does not exist.")
        body, _ = bucket[Key]
        return {"Body": _Body(body), "ContentLength": len(body)}

    async def delete_object(self, *, Bucket: str, Key: str) -> Dict[str, Any]:
        bucket = self._bucket(Bucket, "DeleteObject")
        bucket.pop(Key, None)
        return {}

    async def list_objects_v2(
        self,
        *,
        Bucket: str,
        Prefix: str = "",
        Delimiter: Optional[str] = None,
        MaxKeys: int = 1000,
        ContinuationToken: Optional[str] = None,
    ) -> Dict[str, Any]:
        bucket = self._bucket(Bucket, "ListObjectsV2")
        self._backend.calls[-1][1].update(
            {"Prefix": Prefix, "Delimiter": Delimiter, "MaxKeys": MaxKeys, "ContinuationToken": ContinuationToken}
        )

        entries: List[Tuple[str, str]] = []
        seen_prefixes: set[str] = set()
        for key in sorted(bucket):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append(("prefix", common))
                continue
            entries.append(("object", key))

        start = int(ContinuationToken.removeprefix("page-")) if ContinuationToken else 0
        page = entries[start:start + MaxKeys]
        truncated = start + MaxKeys < len(entries)

        result: Dict[str, Any] = {"IsTruncated": truncated, "KeyCount": len(page)}
        contents = []
        for kind, value in page:
            if kind != "object":
                continue
            body, modified = bucket[value]
            contents.append({
                "Key": value,
                "Size": len(body),
                "LastModified": modified,
                "ETag": f'"{hashlib.md5(body).hexdigest()}"',
            })
        if contents:
            result["Contents"] = contents
        prefixes = [{"Prefix": value} for kind, value in page if kind == "prefix"]
        if prefixes:
            result["CommonPrefixes"] = prefixes
        if truncated:
            result["NextContinuationToken"] = f"page-{start + MaxKeys}"
        return result

    async def generate_presigned_url(self, operation: str, Params: Dict[str, str], ExpiresIn: int = 3600) -> str:
        self._backend.calls.append(("generate_presigned_url", {"operation": operation, **Params, "ExpiresIn": ExpiresIn}))
        endpoint = self._credentials.endpoint.rstrip("/")
        return (
            f"{endpoint}/{Params['Bucket']}/{quote(Params['Key'])}"
            f"?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Expires={ExpiresIn}"
            f"&X-Amz-SignedHeaders=host&X-Amz-Signature=deadbeef"
        )
