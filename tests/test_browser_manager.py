"""Tests for per-worker browser contexts using mocked Playwright objects."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import CrawlSettings
from core.browser_manager import BrowserManager


def _mock_browser():
    page = MagicMock()
    page.close = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    return browser, context, page


@pytest.mark.asyncio
async def test_page_context_opens_and_closes_isolated_context():
    manager = BrowserManager({"navigation_timeout_ms": 5000})
    browser, context, page = _mock_browser()
    manager.browser = browser

    async with manager.page_context({"user-agent": "Agent/1", "accept-language": "fr-CH"}) as opened:
        assert opened is page
        assert manager.open_contexts == 1

    options = browser.new_context.await_args.kwargs
    assert options["user_agent"] == "Agent/1"
    assert options["extra_http_headers"] == {"accept-language": "fr-CH"}
    page.set_default_navigation_timeout.assert_called_once_with(5000)
    context.add_init_script.assert_awaited_once()
    page.close.assert_awaited_once()
    context.close.assert_awaited_once()
    assert manager.open_contexts == 0


@pytest.mark.asyncio
async def test_context_is_closed_when_worker_raises():
    manager = BrowserManager({"enable_stealth_mode": False})
    browser, context, page = _mock_browser()
    manager.browser = browser

    with pytest.raises(RuntimeError):
        async with manager.page_context():
            raise RuntimeError("worker crashed")

    context.add_init_script.assert_not_awaited()
    page.close.assert_awaited_once()
    context.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_errors_are_not_propagated():
    manager = BrowserManager()
    browser, context, page = _mock_browser()
    page.close.side_effect = RuntimeError("already closed")
    context.close.side_effect = RuntimeError("already closed")
    manager.browser = browser

    async with manager.page_context():
        pass

    assert manager.open_contexts == 0


def test_context_options_include_proxy_and_viewport():
    options = BrowserManager()._build_context_options(headers=None, proxy="http://proxy:8080")

    assert options["proxy"] == {"server": "http://proxy:8080"}
    assert options["viewport"] == {"width": 1280, "height": 720}
    assert "extra_http_headers" not in options


def test_from_settings_maps_headless_flag():
    manager = BrowserManager.from_settings(CrawlSettings(headless=False, browser_type="firefox"))

    assert manager.browser_type == "firefox"
    assert manager._build_launch_options() == {"headless": False}


@pytest.mark.asyncio
async def test_stop_releases_browser_and_playwright():
    manager = BrowserManager()
    browser, _, _ = _mock_browser()
    playwright = MagicMock()
    playwright.stop = AsyncMock()
    manager.browser = browser
    manager.playwright = playwright

    await manager.stop()

    browser.close.assert_awaited_once()
    playwright.stop.assert_awaited_once()
    assert manager.browser is None and manager.playwright is None
