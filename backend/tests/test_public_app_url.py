"""Tests for get_public_app_url (base URL of public invoice and PDF links)."""
import os
from unittest.mock import patch

from utils.public_app_url import get_public_app_url, public_link, LOCAL_DEFAULT

URL_VARS = ("PUBLIC_APP_URL", "FRONTEND_URL", "RENDER_EXTERNAL_URL")


def _env(**values):
    env = {k: "" for k in URL_VARS}
    env.update(values)
    return patch.dict(os.environ, env, clear=False)


def test_public_app_url_preferred_over_fallbacks():
    with _env(PUBLIC_APP_URL="https://app.example.ge", FRONTEND_URL="https://other.example.ge"):
        url = get_public_app_url()
    assert url == "https://app.example.ge"


def test_frontend_url_used_when_public_app_url_missing():
    with _env(FRONTEND_URL="https://front.example.ge"):
        assert get_public_app_url() == "https://front.example.ge"


def test_strips_trailing_slash():
    with _env(PUBLIC_APP_URL="https://app.example.ge/"):
        url = get_public_app_url()
    assert url.rstrip("/") == url


def test_upgrades_http_to_https_except_localhost():
    with _env(PUBLIC_APP_URL="http://app.example.ge"):
        assert get_public_app_url() == "https://app.example.ge"
    with _env(PUBLIC_APP_URL="http://localhost:8080"):
        assert get_public_app_url() == "http://localhost:8080"


def test_falls_back_to_localhost():
    with _env():
        assert get_public_app_url() == LOCAL_DEFAULT


def test_public_link_joins_path():
    with _env(PUBLIC_APP_URL="https://app.example.ge/"):
        assert public_link("/invoice/abc") == "https://app.example.ge/invoice/abc"
