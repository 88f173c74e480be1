"""Tests for the request classifier."""

import pytest

from offlinecache.classifier import classify, is_excluded
from offlinecache.config import ClassifierRules
from offlinecache.models import Request, RequestClass


class TestClassify:
    """Tests for classify function."""

    def test_document_destination_is_navigation(self) -> None:
        """Requests for a document are navigations."""
        request = Request(url="http://app.test/dashboard", destination="document")
        assert classify(request) is RequestClass.NAVIGATION

    def test_navigate_mode_is_navigation(self) -> None:
        """Navigate mode alone makes a request a navigation."""
        request = Request(url="http://app.test/dashboard/pedidos", mode="navigate")
        assert classify(request) is RequestClass.NAVIGATION

    def test_navigation_wins_over_api_prefix(self) -> None:
        """A page load under /api/ is still classified as navigation."""
        request = Request(url="http://app.test/api/report", mode="navigate")
        assert classify(request) is RequestClass.NAVIGATION

    def test_build_asset_prefix_is_static(self) -> None:
        """Paths under /_next/ are static assets whatever their destination."""
        request = Request(url="http://app.test/_next/static/chunks/main-abc123.js")
        assert classify(request) is RequestClass.STATIC_ASSET

    @pytest.mark.parametrize("destination", ["style", "script", "image"])
    def test_static_destinations(self, destination: str) -> None:
        """Style, script and image destinations are static assets."""
        request = Request(url="http://app.test/logo.png", destination=destination)
        assert classify(request) is RequestClass.STATIC_ASSET

    def test_api_prefix_is_api_call(self) -> None:
        """Paths under /api/ are API calls."""
        request = Request(url="http://app.test/api/sankhya/pedidos?page=2", mode="cors")
        assert classify(request) is RequestClass.API_CALL

    def test_everything_else_is_other(self) -> None:
        """Unmatched requests fall into the other class."""
        request = Request(url="http://app.test/manifest.json", destination="manifest")
        assert classify(request) is RequestClass.OTHER

    def test_api_without_trailing_slash_is_other(self) -> None:
        """The API prefix includes its trailing slash."""
        request = Request(url="http://app.test/apiary")
        assert classify(request) is RequestClass.OTHER

    def test_custom_rules(self) -> None:
        """Prefixes come from the supplied rules."""
        rules = ClassifierRules(asset_prefixes=("/assets/",), api_prefixes=("/v1/",))

        assert classify(Request(url="http://app.test/assets/app.css"), rules) is RequestClass.STATIC_ASSET
        assert classify(Request(url="http://app.test/v1/orders"), rules) is RequestClass.API_CALL
        assert classify(Request(url="http://app.test/api/orders"), rules) is RequestClass.OTHER


class TestIsExcluded:
    """Tests for is_excluded function."""

    def test_extension_scheme_excluded(self) -> None:
        """chrome-extension:// requests bypass the interceptor."""
        request = Request(url="chrome-extension://abcdef/content.js", destination="script")
        assert is_excluded(request) is True

    def test_http_not_excluded(self) -> None:
        """Regular requests are not excluded."""
        assert is_excluded(Request(url="http://app.test/")) is False

    def test_custom_excluded_schemes(self) -> None:
        """Excluded schemes are configurable."""
        rules = ClassifierRules(excluded_schemes=("chrome-extension", "moz-extension"))
        assert is_excluded(Request(url="moz-extension://x/y.js"), rules) is True
