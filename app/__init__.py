"""Top-level package for the Garage share-link control-plane FastAPI application."""

__all__ = [
    "APP_ENV",
    "DEV_SHARE_SECRET",
    "SHARE_ENCRYPTION_SECRET",
    "S3_API_ENDPOINT",
    "S3_API_REGION",
    "PUBLIC_BASE_URL",
]

from dotenv import load_dotenv
import os
load_dotenv()

APP_ENV = os.getenv("APP_ENV", "production")

# Share token encryption secret. The dev default is documented so local
# setups work out of the box; the codec refuses it in production.
DEV_SHARE_SECRET = "default-dev-secret-do-not-use-in-prod"
SHARE_ENCRYPTION_SECRET = os.environ.get("SHARE_ENCRYPTION_SECRET") or DEV_SHARE_SECRET

# S3 connection overrides (server-side endpoint may differ from the public one)
S3_API_ENDPOINT = os.environ.get("S3_API_ENDPOINT")
S3_API_REGION = os.environ.get("S3_API_REGION")

PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "").rstrip("/")
