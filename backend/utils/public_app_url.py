"""
Canonical public base URL for links handed to invoice recipients
(public invoice pages and public PDF URLs).
"""
import os
import logging

logger = logging.getLogger(__name__)

LOCAL_DEFAULT = "http://localhost:3000"


def get_public_app_url() -> str:
    """
    Return the normalized public base URL (no trailing slash).

    Fallback order: PUBLIC_APP_URL, FRONTEND_URL, RENDER_EXTERNAL_URL.
    Non-localhost http URLs are upgraded to https. With nothing configured
    the local development URL is returned and a warning is logged.
    """
    raw = (
        (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("FRONTEND_URL") or "").strip()
        or (os.getenv("RENDER_EXTERNAL_URL") or "").strip()
    )
    raw = raw.rstrip("/")
    if not raw:
        logger.warning("PUBLIC_APP_URL not set; public links will point at localhost")
        return LOCAL_DEFAULT
    if raw.startswith("http://") and "localhost" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    return raw


def public_link(path: str) -> str:
    """Join a path onto the public base URL."""
    return f"{get_public_app_url()}/{path.lstrip('/')}"
