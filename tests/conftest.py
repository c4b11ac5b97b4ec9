from __future__ import annotations

"""Pytest fixtures for FastAPI integration tests.

Object storage is replaced by the in-memory ``FakeS3`` from
``tests/s3_stub.py`` through FastAPI dependency overrides, so the request
pipeline runs end-to-end without network round-trips.
"""

import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("SHARE_ENCRYPTION_SECRET", "test-share-secret-0123456789abcdef")
os.environ.setdefault("FRONTEND_ORIGIN", "https://dashboard.test")
os.environ.setdefault("PUBLIC_BASE_URL", "https://console.test")
# Endpoint/region must come from the operator headers in tests
os.environ.pop("S3_API_ENDPOINT", None)
os.environ.pop("S3_API_REGION", None)

# Ensure project root on PYTHONPATH so `import app` works when pytest is run
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Boot the app once
from app.main import create_app, limiter  # noqa: E402, WPS433
from app.utils.s3_client import S3Credentials, get_s3_client_factory  # noqa: E402
from tests.s3_stub import FakeS3  # noqa: E402

app: FastAPI = create_app()
client = TestClient(app)

BUCKET = "docs"
OTHER_BUCKET = "photos"
ENDPOINT = "http://localhost:3900"

OPERATOR_HEADERS = {
    "X-S3-Access-Key-Id": "GK31c2f218a2e44f485b94239e",
    "X-S3-Secret-Access-Key": "b892c0665f0ada8a4755dae98baa3b133590e11dae3bcc1f",
    "X-S3-Region": "garage",
    "X-S3-Endpoint": ENDPOINT,
}

OPERATOR_CREDENTIALS = S3Credentials(
    access_key_id=OPERATOR_HEADERS["X-S3-Access-Key-Id"],
    secret_access_key=OPERATOR_HEADERS["X-S3-Secret-Access-Key"],
    region="garage",
    endpoint=ENDPOINT,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def s3() -> FakeS3:
    """Fresh storage with two buckets, wired into both apps."""

    backend = FakeS3(BUCKET, OTHER_BUCKET)
    backend.put(BUCKET, "readme.txt", b"hello")
    backend.put(BUCKET, "reports/q1.pdf", b"%PDF-1.7 q1")
    backend.put(BUCKET, "reports/q2.pdf", b"%PDF-1.7 q2")
    backend.put(OTHER_BUCKET, "cat.jpg", b"\xff\xd8\xff")

    # The public sub-app resolves its own dependency overrides.
    targets = (app, app.state.public_app)
    for target in targets:
        target.dependency_overrides[get_s3_client_factory] = lambda: backend.client_factory
    yield backend
    for target in targets:
        target.dependency_overrides.pop(get_s3_client_factory, None)


@pytest.fixture()
def api_client() -> TestClient:  # noqa: D401 – simple alias
    return client


def create_share(api: TestClient, bucket: str = BUCKET, memo: str = "for Bob", expires_at: int = -1) -> dict:
    resp = api.post(
        f"/v1/buckets/{bucket}/shares",
        json={"memo": memo, "expiresAt": expires_at},
        headers=OPERATOR_HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def proxy(api: TestClient, token: str, operation: dict):
    return api.post("/public/share/proxy", json={"token": token, "operation": operation})
