"""Tests for the crawl orchestrator with a fake HTTP session."""

import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response, make_session

from catalog_crawl import batch as batch_module
from catalog_crawl.batch import BatchSaver
from catalog_crawl.crawler import CrawlError, CrawlSession, FetchError, fetch_html, login
from catalog_crawl.db import get_all_products, get_product_images

SHOP = "https://shop.example.com"


def detail_page(name: str, price: str = "499.00", images=()) -> str:
    data = {
        "@type": "Product",
        "name": name,
        "offers": {"@type": "Offer", "price": price, "priceCurrency": "SEK"},
    }
    imgs = "".join(f'<img src="{src}">' for src in images)
    return (
        f'<html><head><script type="application/ld+json">{json.dumps(data)}</script></head>'
        f"<body><h1>{name}</h1>{imgs}</body></html>"
    )


LISTING = """
<html><body>
  <a href="/product/9970239.html">Weekend bag</a>
  <a href="/product/no-number">Mystery</a>
  <a href="/bags/page2">Next</a>
  <a href="https://other.example.org/product/1111111">Elsewhere</a>
  <a href="/product/gift-card">Gift card</a>
</body></html>
"""

LISTING_PAGE_2 = """
<html><body>
  <a href="/bags/">Back</a>
  <a href="/product/9970240.html">Tote</a>
</body></html>
"""

PAGES = {
    f"{SHOP}/bags/": LISTING,
    f"{SHOP}/bags/page2": LISTING_PAGE_2,
    f"{SHOP}/product/9970239.html": detail_page("Weekend bag", "1299.00"),
    f"{SHOP}/product/9970240.html": detail_page("Tote"),
    f"{SHOP}/product/no-number": "<html><body><h1>Mystery</h1></body></html>",
    f"{SHOP}/product/gift-card": detail_page("Gift card"),
}


class TestFetchHtml:
    def test_success(self):
        """Test a plain successful fetch."""
        session = make_session(pages={f"{SHOP}/a": "<p>hi</p>"})
        assert fetch_html(f"{SHOP}/a", session) == "<p>hi</p>"

    def test_retries_transient_status(self):
        """Verify a 503 is retried after a backoff."""
        session = MagicMock()
        session.get.side_effect = [make_response(503), make_response(200, text="ok")]
        sleep = MagicMock()

        assert fetch_html(f"{SHOP}/a", session, sleep=sleep) == "ok"
        assert sleep.call_count == 1

    def test_connection_errors_exhaust_retries(self):
        """Verify connection errors are retried, then reported."""
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("down")
        sleep = MagicMock()

        with pytest.raises(FetchError):
            fetch_html(f"{SHOP}/a", session, sleep=sleep)
        assert session.get.call_count == 4
        assert sleep.call_count == 3

    def test_http_error_not_retried(self):
        """Verify a 404 fails at once."""
        session = make_session()
        with pytest.raises(FetchError, match="404"):
            fetch_html(f"{SHOP}/missing", session)
        assert session.get.call_count == 1

    def test_off_site_url_rejected(self):
        """Verify URLs outside the allowed domains are never requested."""
        session = make_session()
        with pytest.raises(FetchError):
            fetch_html("https://other.example.org/x", session, allowed_domains=["shop.example.com"])
        session.get.assert_not_called()


class TestLogin:
    LOGIN_URL = f"{SHOP}/account/login"

    def gated(self, profile, **kwargs):
        values = {"login_url": self.LOGIN_URL, "username": "buyer", "password": "s3cret"}
        values.update(kwargs)
        return profile.with_overrides(**values)

    def test_public_site_needs_no_login(self, profile):
        """Verify a profile without a login URL never posts."""
        session = make_session()
        assert login(session, profile)
        session.post.assert_not_called()

    def test_missing_credentials_skip_login(self, profile):
        """Verify a login URL without a password is treated as a public site."""
        session = make_session()
        assert login(session, self.gated(profile, password=""))
        session.post.assert_not_called()

    def test_form_fields_posted(self, profile):
        """Verify credentials are posted under the configured field names."""
        session = make_session()
        session.post.return_value = make_response(200)

        assert login(session, self.gated(profile, username_field="email", password_field="pwd"))

        session.post.assert_called_once()
        call = session.post.call_args
        assert call.args[0] == self.LOGIN_URL
        assert call.kwargs["data"] == {"email": "buyer", "pwd": "s3cret"}

    def test_rejected_login(self, profile):
        """Verify a non-success status reports a failed login."""
        session = make_session()
        session.post.return_value = make_response(401, text="Wrong password")
        assert not login(session, self.gated(profile))

    def test_connection_error_on_login(self, profile):
        """Verify a network failure during login reports a failed login."""
        session = make_session()
        session.post.side_effect = requests.exceptions.ConnectionError("down")
        assert not login(session, self.gated(profile))

    def test_failed_login_aborts_crawl(self, profile, temp_db):
        """Verify no page is fetched after a failed login."""
        session = make_session(pages=PAGES)
        session.post.return_value = make_response(403)

        with pytest.raises(CrawlError, match="Login"):
            CrawlSession(self.gated(profile), BatchSaver(temp_db), http=session, sleep=MagicMock()).run()
        session.get.assert_not_called()

    def test_login_before_first_fetch(self, profile, temp_db):
        """Verify the crawl logs in on its session and then crawls as usual."""
        session = make_session(pages=PAGES)
        session.post.return_value = make_response(200)

        result = CrawlSession(
            self.gated(profile), BatchSaver(temp_db), http=session, sleep=MagicMock()
        ).run()

        session.post.assert_called_once()
        assert result.stats.inserted == 2


class TestInDocumentStrategy:
    def test_full_crawl(self, profile, temp_db):
        """Test a breadth-first crawl across two listing pages."""
        session = make_session(pages=PAGES)
        saver = BatchSaver(temp_db)

        result = CrawlSession(profile, saver, http=session, sleep=MagicMock()).run()

        assert result.ok
        assert result.products_found == 2
        assert result.pages_dropped == 1
        assert result.stats.inserted == 2
        assert result.pages_visited == 6

        products = {p["article_number"]: p for p in get_all_products(temp_db)}
        assert set(products) == {"9970239", "9970240"}
        assert products["9970239"]["name"] == "Weekend bag"
        assert products["9970239"]["price"] == "1299.00"
        assert products["9970239"]["currency"] == "SEK"
        assert products["9970239"]["source_url"] == f"{SHOP}/product/9970239.html"

        fetched = [call.args[0] for call in session.get.call_args_list]
        assert "https://other.example.org/product/1111111" not in fetched
        assert f"{SHOP}/product/gift-card" not in fetched
        assert fetched.count(f"{SHOP}/bags/") == 1

    def test_max_pages_limits_visits(self, profile, temp_db):
        """Verify the page budget stops the crawl."""
        session = make_session(pages=PAGES)
        limited = profile.with_overrides(max_pages=2)

        result = CrawlSession(limited, BatchSaver(temp_db), http=session, sleep=MagicMock()).run()

        assert result.pages_visited == 2
        assert [p["article_number"] for p in get_all_products(temp_db)] == ["9970239"]

    def test_delay_between_detail_fetches(self, profile, temp_db):
        """Verify the crawl delay sits between detail fetches only."""
        session = make_session(pages=PAGES)
        sleep = MagicMock()
        paced = profile.with_overrides(crawl_delay=0.5)

        CrawlSession(paced, BatchSaver(temp_db), http=session, sleep=sleep).run()

        # three detail fetches, so two pauses
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_start_page_failure_raises(self, profile, temp_db):
        """Verify an unreachable start page aborts the crawl."""
        session = make_session(pages={})
        with pytest.raises(CrawlError):
            CrawlSession(profile, BatchSaver(temp_db), http=session, sleep=MagicMock()).run()

    def test_failed_detail_page_is_logged_and_skipped(self, profile, temp_db):
        """Test that one failing detail page does not stop the crawl."""
        pages = dict(PAGES)
        del pages[f"{SHOP}/product/9970240.html"]
        session = make_session(pages=pages)

        result = CrawlSession(profile, BatchSaver(temp_db), http=session, sleep=MagicMock()).run()

        assert result.page_errors == 1
        assert result.stats.inserted == 1

    def test_start_url_on_detail_page(self, profile, temp_db):
        """Verify a start URL that is a product page is extracted directly."""
        session = make_session(pages=PAGES)
        single = profile.with_overrides(start_url=f"{SHOP}/product/9970239.html")

        result = CrawlSession(single, BatchSaver(temp_db), http=session, sleep=MagicMock()).run()

        assert result.pages_visited == 1
        assert result.stats.inserted == 1

    def test_image_validation_replaces_extracted_images(self, profile, temp_db):
        """Test that validated image URLs replace the extracted ones."""
        pages = dict(PAGES)
        pages[f"{SHOP}/product/9970239.html"] = detail_page(
            "Weekend bag", images=["/images/9970239_1.jpg", "/images/9970239_2.jpg"]
        )
        session = make_session(pages=pages, live_images={f"{SHOP}/images/9970239_2.jpg"})
        validating = profile.with_overrides(validate_images=True)

        CrawlSession(validating, BatchSaver(temp_db), http=session, sleep=MagicMock()).run()

        products = {p["article_number"]: p for p in get_all_products(temp_db)}
        assert products["9970239"]["image_urls"] == [f"{SHOP}/images/9970239_2.jpg"]
        assert products["9970240"]["image_urls"] == []

    def test_flush_failure_recorded_on_result(self, profile, temp_db, monkeypatch):
        """Verify flush failures surface on the crawl result."""
        def broken_insert(conn, rec):
            raise RuntimeError("locked")

        monkeypatch.setattr(batch_module, "insert_product", broken_insert)
        session = make_session(pages=PAGES)
        saver = BatchSaver(temp_db)

        result = CrawlSession(profile, saver, http=session, sleep=MagicMock()).run()

        assert not result.ok
        assert len(result.flush_errors) == 1
        assert result.flush_errors[0].count == 2
        assert saver.failed_count == 2


class TestRenderedStrategy:
    def test_detail_links_from_renderer(self, profile, temp_db):
        """Test the hybrid strategy with rendered product links."""
        hybrid = profile.with_overrides(use_javascript_rendering=True)
        renderer = MagicMock(return_value=[
            f"{SHOP}/product/9970240.html",
            f"{SHOP}/product/9970239.html",
        ])
        session = make_session(pages=PAGES)

        result = CrawlSession(
            hybrid, BatchSaver(temp_db), http=session, link_renderer=renderer, sleep=MagicMock()
        ).run()

        renderer.assert_called_once_with(hybrid.start_url, hybrid)
        fetched = [call.args[0] for call in session.get.call_args_list]
        assert fetched == [f"{SHOP}/product/9970240.html", f"{SHOP}/product/9970239.html"]
        assert result.stats.inserted == 2
        prices = {p["article_number"]: p["price"] for p in get_all_products(temp_db)}
        assert Decimal(prices["9970239"]) == Decimal("1299.00")

    def test_missing_renderer_raises(self, profile, temp_db):
        """Verify the hybrid strategy needs a link renderer."""
        hybrid = profile.with_overrides(use_javascript_rendering=True)
        with pytest.raises(CrawlError):
            CrawlSession(hybrid, BatchSaver(temp_db), http=make_session()).run()

    def test_no_rendered_links_raises(self, profile, temp_db):
        """Verify an empty rendered listing aborts the crawl."""
        hybrid = profile.with_overrides(use_javascript_rendering=True)
        session = CrawlSession(
            hybrid, BatchSaver(temp_db), http=make_session(), link_renderer=lambda url, p: []
        )
        with pytest.raises(CrawlError):
            session.run()


class TestDownloadImages:
    def test_payloads_stored_with_fetcher(self, profile, temp_db):
        """Test image downloads through the crawl session."""
        from catalog_crawl.crawler import make_image_fetcher

        image = f"{SHOP}/images/9970239_1.jpg"
        pages = {
            f"{SHOP}/bags/": '<a href="/product/9970239.html">bag</a>',
            f"{SHOP}/product/9970239.html": detail_page("Weekend bag", images=["/images/9970239_1.jpg"]),
        }
        session = make_session(pages=pages, live_images={image})
        saver = BatchSaver(temp_db, image_fetcher=make_image_fetcher(session))
        with_gallery = profile.with_overrides(image_selector="img")

        CrawlSession(with_gallery, saver, http=session, sleep=MagicMock()).run()

        product = get_all_products(temp_db)[0]
        images = get_product_images(temp_db, product["id"])
        assert images[0]["url"] == image
        assert images[0]["data"].startswith(b"\xff\xd8")
