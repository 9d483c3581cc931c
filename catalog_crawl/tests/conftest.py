"""Shared fixtures: temporary databases, profiles and fake HTTP sessions."""

import tempfile
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests

from catalog_crawl.profile import SiteProfile


def make_response(status_code: int = 200, text: str = "", content: bytes = b"") -> MagicMock:
    """A stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    response.content = content
    response.encoding = "utf-8"
    if status_code >= 400:
        error = requests.exceptions.HTTPError(f"{status_code} Error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


def make_session(
    pages: Optional[Dict[str, str]] = None,
    live_images: Optional[set] = None,
) -> MagicMock:
    """A fake session serving ``pages`` on GET and answering HEAD for ``live_images``.

    Unknown GET URLs return 404; unknown HEAD URLs return 404.
    """
    pages = pages or {}
    live_images = live_images or set()
    session = MagicMock()

    def get(url, **kwargs):
        if url in pages:
            return make_response(200, text=pages[url])
        if url in live_images:
            return make_response(200, content=b"\xff\xd8" + url.encode())
        return make_response(404)

    def head(url, **kwargs):
        return make_response(200 if url in live_images else 404)

    session.get.side_effect = get
    session.head.side_effect = head
    return session


@pytest.fixture
def temp_db():
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def profile():
    """A plain in-document profile for https://shop.example.com."""
    return SiteProfile(
        name="Example Shop",
        start_url="https://shop.example.com/bags/",
        detail_url_pattern="/product/",
        validate_images=False,
        crawl_delay=0,
        max_pages=20,
    )
