"""S3 credentials and async client factory (aiobotocore)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, AsyncContextManager, Callable

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from app import S3_API_ENDPOINT, S3_API_REGION
from app.settings import DEFAULT_S3_ENDPOINT, DEFAULT_S3_REGION

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


@dataclass(frozen=True)
class S3Credentials:
    """Storage credentials and connection parameters.

    The secret is excluded from ``repr`` so it never lands in a log line or
    traceback by accident.
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str | None = None
    endpoint: str | None = None

    def resolve(self) -> "S3Credentials":
        """Return a copy with endpoint and region filled in.

        Server-side overrides win over what the caller supplied, matching how
        the console talks to Garage from inside its own network.
        """
        return replace(
            self,
            endpoint=S3_API_ENDPOINT or self.endpoint or DEFAULT_S3_ENDPOINT,
            region=S3_API_REGION or self.region or DEFAULT_S3_REGION,
        )


S3ClientFactory = Callable[[S3Credentials], AsyncContextManager[Any]]


def create_s3_client(credentials: S3Credentials) -> AsyncContextManager[Any]:
    """Create an aiobotocore S3 client; use as ``async with``."""
    return get_session().create_client(
        "s3",
        endpoint_url=credentials.endpoint or DEFAULT_S3_ENDPOINT,
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        region_name=credentials.region or DEFAULT_S3_REGION,
        # Garage only serves path-style requests
        config=AioConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def get_s3_client_factory() -> S3ClientFactory:
    """FastAPI dependency returning the client factory (overridden in tests)."""
    return create_s3_client


def client_error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def client_error_message(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Message", "")) or str(exc)
