"""Tests for URL-derived article numbers and page classification."""

from catalog_crawl.classifier import PageType, classify_page, is_detail_url
from catalog_crawl.html_utils import parse_html
from catalog_crawl.profile import SiteProfile
from catalog_crawl.url_patterns import extract_from_url, match_article_number


class TestMatchArticleNumber:
    def test_html_suffix_takes_precedence(self):
        """Verify the .html pattern is tried first."""
        url = "https://shop.example.com/c/1111111/p/7654321.html"
        assert match_article_number(url) == "7654321"

    def test_trailing_segment_with_query(self):
        """Test a trailing numeric segment with a query string."""
        assert match_article_number("https://shop.example.com/p/9970222?v=1") == "9970222"

    def test_anywhere_in_url(self):
        """Test a long number anywhere in the URL."""
        assert match_article_number("https://shop.example.com/bag-9970239-black") == "9970239"

    def test_short_numbers_ignored(self):
        """Verify short numbers are not article numbers."""
        assert match_article_number("https://shop.example.com/2024/sale/499") is None


class TestExtractFromUrl:
    def test_only_article_number_is_set(self):
        """Verify URL patterns fill nothing but the article number."""
        record = extract_from_url("https://shop.example.com/p/9970239.html")
        assert record.article_number == "9970239"
        assert record.name is None
        assert record.image_urls == []

    def test_sku_selector_fallback(self):
        """Test the SKU selector fallback."""
        soup = parse_html('<span class="sku"> ART-42 </span>')
        record = extract_from_url("https://shop.example.com/p/bag", soup, ".sku")
        assert record.article_number == "ART-42"

    def test_nothing_found(self):
        """Test a URL and page with no article number."""
        assert extract_from_url("https://shop.example.com/p/bag").article_number is None


class TestClassifier:
    def test_substring_and_regex(self):
        """Verify the detail pattern works as substring and as regex."""
        assert is_detail_url("https://shop.example.com/product/1", "/product/")
        assert is_detail_url("https://shop.example.com/p/1234567", r"/p/\d+$")
        assert not is_detail_url("https://shop.example.com/bags/", "/product/")

    def test_empty_or_invalid_pattern(self):
        """Verify an empty or broken pattern matches nothing."""
        assert not is_detail_url("https://shop.example.com/product/1", "")
        assert not is_detail_url("https://shop.example.com/x", "([")

    def test_classify_page(self):
        """Test page classification."""
        profile = SiteProfile(
            name="Shop", start_url="https://shop.example.com/", detail_url_pattern="/product/"
        )
        assert classify_page("https://shop.example.com/product/9", profile) is PageType.DETAIL
        assert classify_page("https://shop.example.com/bags/", profile) is PageType.LISTING
