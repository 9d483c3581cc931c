"""Tests for site profile construction and loading."""

import json

import pytest

from catalog_crawl.config import DEFAULT_EAN_FIELDS
from catalog_crawl.profile import SiteProfile, load_site_profile


class TestSiteProfile:
    def test_defaults(self):
        """Test profile defaults."""
        profile = SiteProfile(name="Shop", start_url="https://www.shop.se/")
        assert profile.allowed_domains == ["www.shop.se"]
        assert profile.article_number_source == "url"
        assert profile.article_number_field == "@id"
        assert profile.ean_fields == list(DEFAULT_EAN_FIELDS)
        assert profile.use_structured_data and profile.use_html_selectors
        assert profile.validate_images
        assert not profile.download_images

    def test_rejects_unknown_article_number_source(self):
        """Verify an unknown article number source is rejected."""
        with pytest.raises(ValueError):
            SiteProfile(name="Shop", start_url="https://shop.se/", article_number_source="sku")

    def test_rejects_missing_start_url(self):
        """Verify a profile needs a start URL."""
        with pytest.raises(ValueError):
            SiteProfile(name="Shop", start_url="")

    def test_detail_selectors_skip_unset(self):
        """Verify unset selectors are left out."""
        profile = SiteProfile(
            name="Shop",
            start_url="https://shop.se/",
            name_selector="h1",
            image_selector=".gallery img",
        )
        assert profile.detail_selectors == {"name": "h1", "image_urls": ".gallery img"}

    def test_from_dict_rejects_unknown_keys(self):
        """Verify misspelled profile keys are rejected."""
        with pytest.raises(ValueError, match="Unknown profile keys"):
            SiteProfile.from_dict({"name": "Shop", "start_url": "https://shop.se/", "colour": "x"})

    def test_with_overrides_ignores_none(self):
        """Test that None overrides keep the original value."""
        profile = SiteProfile(name="Shop", start_url="https://shop.se/", max_pages=10)
        changed = profile.with_overrides(max_pages=None, validate_images=False)
        assert changed.max_pages == 10
        assert changed.validate_images is False
        assert profile.validate_images is True

    def test_requires_login_needs_url_and_credentials(self):
        """Verify login is only required with a URL, a username and a password."""
        public = SiteProfile(name="Shop", start_url="https://shop.se/", login_url="https://shop.se/login")
        gated = public.with_overrides(username="buyer", password="s3cret")
        assert not public.requires_login
        assert gated.requires_login
        assert "s3cret" not in repr(gated)


class TestLoadSiteProfile:
    def test_single_object(self, tmp_path):
        """Test loading a file with one profile."""
        path = tmp_path / "profile.json"
        path.write_text(json.dumps({
            "name": "Shop",
            "start_url": "https://shop.se/",
            "article_number_source": "field",
            "article_number_field": "productID",
        }), encoding="utf-8")

        profile = load_site_profile(str(path))

        assert profile.name == "Shop"
        assert profile.article_number_field == "productID"

    def test_list_picks_by_name(self, tmp_path):
        """Test picking a profile by name from a list."""
        path = tmp_path / "profiles.json"
        path.write_text(json.dumps([
            {"name": "First", "start_url": "https://first.se/"},
            {"name": "Second", "start_url": "https://second.se/"},
        ]), encoding="utf-8")

        assert load_site_profile(str(path), "second").start_url == "https://second.se/"
        with pytest.raises(ValueError):
            load_site_profile(str(path))
        with pytest.raises(ValueError):
            load_site_profile(str(path), "third")
