from __future__ import annotations

"""Unified models namespace – API request/response bodies, persisted records
and the in-memory payloads that flow between the share components.

Call-sites simply::

    from app.models import ShareRecord, EnvelopePayload, ShareProxyRequest
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from app.models.permissions import SHARE_PERMISSIONS, SharePermission
from app.utils.s3_client import S3Credentials

# Sentinel for "never expires" in epoch-millisecond expiry fields
NEVER_EXPIRES = -1


def validate_expires_at(value: int) -> int:
    """Accept ``-1`` (never) or a positive epoch-millisecond timestamp."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("expiresAt must be an integer epoch-millisecond timestamp or -1")
    if value != NEVER_EXPIRES and value <= 0:
        raise ValueError("expiresAt must be -1 (never) or a positive epoch-millisecond timestamp")
    return value


# ---------------------------------------------------------------------------
# In-memory payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EnvelopePayload:
    """Secret contents of a share token.

    Built fresh each time a token is minted and only ever held in memory;
    the claim keys are kept short because they end up inside every URL.
    """
    id: str
    bucket: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str
    endpoint: str

    def to_claims(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "bucket": self.bucket,
            "ak": self.access_key_id,
            "sk": self.secret_access_key,
            "region": self.region,
            "endpoint": self.endpoint,
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "EnvelopePayload":
        values = {
            "id": claims["id"],
            "bucket": claims["bucket"],
            "access_key_id": claims["ak"],
            "secret_access_key": claims["sk"],
            "region": claims["region"],
            "endpoint": claims["endpoint"],
        }
        if not all(isinstance(v, str) and v for v in values.values()):
            raise ValueError("envelope claims must be non-empty strings")
        return cls(**values)

    @classmethod
    def for_share(cls, share_id: str, bucket: str, credentials: S3Credentials) -> "EnvelopePayload":
        resolved = credentials.resolve()
        return cls(
            id=share_id,
            bucket=bucket,
            access_key_id=resolved.access_key_id,
            secret_access_key=resolved.secret_access_key,
            region=resolved.region,
            endpoint=resolved.endpoint,
        )

    @property
    def credentials(self) -> S3Credentials:
        return S3Credentials(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            region=self.region,
            endpoint=self.endpoint,
        )


@dataclass(frozen=True)
class ShareContext:
    """Bucket-locked storage context yielded by the capability gateway.

    Only the executor consumes it, and only for its two read verbs.
    """
    share_id: str
    bucket: str
    credentials: S3Credentials


@dataclass(frozen=True)
class ShareGrant:
    id: str
    token: str


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AuditAction(str, Enum):
    """Standardized audit action types."""
    share_create = "share.create"
    share_update = "share.update"
    share_regenerate = "share.regenerate"
    share_revoke = "share.revoke"
    share_access = "share.access"
    share_denied = "share.denied"
    relay_fetch = "relay.fetch"


class AuditStatus(str, Enum):
    success = "success"
    failure = "failure"
    denied = "denied"


# ---------------------------------------------------------------------------
# Persisted record
# ---------------------------------------------------------------------------

class ShareRecord(BaseModel):
    """Durable share metadata, stored as JSON inside the bucket it grants."""

    model_config = {"populate_by_name": True}

    id: str
    bucket: str
    memo: str = ""
    created_at: int = Field(..., alias="createdAt")
    expires_at: int = Field(NEVER_EXPIRES, alias="expiresAt")
    # Unknown values are tolerated on read; they never grant anything.
    permissions: List[str] = Field(default_factory=lambda: [p.value for p in SHARE_PERMISSIONS])

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at != NEVER_EXPIRES and now_ms > self.expires_at

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Operator-facing bodies
# ---------------------------------------------------------------------------

class BaseResponse(BaseModel):
    model_config = {
        "from_attributes": True,
        "json_schema_extra": {"example": {"message": "OK"}},
    }


class MessageResponse(BaseResponse):
    message: str = Field(..., examples=["OK"])


class ShareCreateRequest(BaseModel):
    model_config = {"populate_by_name": True}

    memo: str = Field(..., min_length=1, max_length=512, description="Human label shown in the share list")
    expires_at: int = Field(..., alias="expiresAt", description="Epoch milliseconds, or -1 for never")

    @field_validator("expires_at")
    @classmethod
    def check_expiry(cls, value: int) -> int:
        return validate_expires_at(value)


class ShareUpdateRequest(BaseModel):
    model_config = {"populate_by_name": True}

    expires_at: int = Field(..., alias="expiresAt", description="Epoch milliseconds, or -1 for never")

    @field_validator("expires_at")
    @classmethod
    def check_expiry(cls, value: int) -> int:
        return validate_expires_at(value)


class ShareGrantResponse(BaseModel):
    id: str = Field(..., description="Share ID")
    token: str = Field(..., description="Sealed bearer token (shown once)")
    url: str = Field(..., description="Recipient link carrying the token")


# ---------------------------------------------------------------------------
# Recipient-facing bodies – closed set of operation variants
# ---------------------------------------------------------------------------

class ListObjectsOperation(BaseModel):
    model_config = {"populate_by_name": True}

    action: Literal["list"] = "list"
    bucket: Optional[str] = Field(None, description="Optional; must match the token's bucket")
    prefix: str = ""
    delimiter: str = "/"
    max_keys: int = Field(1000, alias="maxKeys", ge=1, le=1000)
    continuation_token: Optional[str] = Field(None, alias="continuationToken")


class PresignGetOperation(BaseModel):
    action: Literal["presign-get"] = "presign-get"
    bucket: Optional[str] = Field(None, description="Optional; must match the token's bucket")
    key: str = Field(..., min_length=1)


ShareOperation = Annotated[
    Union[ListObjectsOperation, PresignGetOperation],
    Field(discriminator="action"),
]


class ShareProxyRequest(BaseModel):
    # A missing or empty token is left for the codec to reject, so it gets the
    # same 401 as any other bad token.
    token: Optional[str] = None
    operation: ShareOperation


class ObjectEntry(BaseModel):
    model_config = {"populate_by_name": True}

    key: str = Field(..., alias="Key")
    size: Optional[int] = Field(None, alias="Size")
    last_modified: Optional[str] = Field(None, alias="LastModified")
    etag: Optional[str] = Field(None, alias="ETag")


class CommonPrefix(BaseModel):
    model_config = {"populate_by_name": True}

    prefix: str = Field(..., alias="Prefix")


class ObjectListing(BaseModel):
    model_config = {"populate_by_name": True}

    contents: List[ObjectEntry] = Field(default_factory=list, alias="Contents")
    common_prefixes: List[CommonPrefix] = Field(default_factory=list, alias="CommonPrefixes")
    next_continuation_token: Optional[str] = Field(None, alias="NextContinuationToken")
    is_truncated: bool = Field(False, alias="IsTruncated")


class DownloadReferenceResponse(BaseModel):
    url: str = Field(..., description="Relay path on this origin; never a direct storage URL")


__all__ = [
    "NEVER_EXPIRES",
    "SHARE_PERMISSIONS",
    "SharePermission",
    "validate_expires_at",
    "EnvelopePayload",
    "ShareContext",
    "ShareGrant",
    "AuditAction",
    "AuditStatus",
    "ShareRecord",
    "MessageResponse",
    "ShareCreateRequest",
    "ShareUpdateRequest",
    "ShareGrantResponse",
    "ListObjectsOperation",
    "PresignGetOperation",
    "ShareOperation",
    "ShareProxyRequest",
    "ObjectEntry",
    "CommonPrefix",
    "ObjectListing",
    "DownloadReferenceResponse",
]
