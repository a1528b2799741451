"""
Tests for the browser session with Playwright mocked out.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from qualitypilot.browser.session import CHROMIUM_LAUNCH_ARGS, BrowserSession
from qualitypilot.core.types import BrowserKind, RunOptions, Viewport
from qualitypilot.error_handling.exceptions import InfrastructureError


@pytest.fixture
def playwright_mocks():
    """Playwright driver, browser, context and page doubles."""
    page = AsyncMock()
    page.video = None
    page.screenshot = AsyncMock(return_value=b"png")

    context = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.set_default_timeout = MagicMock()

    browser = AsyncMock()
    browser.new_context = AsyncMock(return_value=context)

    driver = MagicMock()
    driver.stop = AsyncMock()
    for kind in BrowserKind:
        engine = MagicMock()
        engine.launch = AsyncMock(return_value=browser)
        setattr(driver, kind.value, engine)

    starter = MagicMock()
    starter.start = AsyncMock(return_value=driver)

    with patch("qualitypilot.browser.session.async_playwright", return_value=starter):
        yield {"driver": driver, "browser": browser, "context": context, "page": page}


class TestBrowserSession:

    def test_from_options(self):
        options = RunOptions(
            browser="firefox", headless=False, timeout=5000,
            viewport=Viewport(width=800, height=600),
        )

        session = BrowserSession.from_options(options)

        assert session.browser_kind is BrowserKind.FIREFOX
        assert session.headless is False
        assert (session.viewport_width, session.viewport_height) == (800, 600)
        assert session.timeout == 5000

    @pytest.mark.asyncio
    async def test_start_chromium(self, playwright_mocks):
        session = BrowserSession(browser_kind=BrowserKind.CHROMIUM, headless=True, timeout=7000)

        page = await session.start()

        assert page is playwright_mocks["page"]
        assert session.is_started
        playwright_mocks["driver"].chromium.launch.assert_awaited_once_with(
            headless=True, args=CHROMIUM_LAUNCH_ARGS
        )
        playwright_mocks["context"].set_default_timeout.assert_called_once_with(7000)

    @pytest.mark.asyncio
    async def test_start_webkit_without_chromium_args(self, playwright_mocks):
        session = BrowserSession(browser_kind=BrowserKind.WEBKIT, headless=True)

        await session.start()

        playwright_mocks["driver"].webkit.launch.assert_awaited_once_with(headless=True)

    @pytest.mark.asyncio
    async def test_video_recording(self, playwright_mocks, tmp_path):
        session = BrowserSession(record_video_dir=tmp_path / "videos")
        video = MagicMock()
        video.path = AsyncMock(return_value=tmp_path / "videos" / "a.webm")
        playwright_mocks["page"].video = video

        await session.start()
        await session.close()

        kwargs = playwright_mocks["browser"].new_context.await_args.kwargs
        assert kwargs["record_video_dir"] == str(tmp_path / "videos")
        assert session.video_path == str(tmp_path / "videos" / "a.webm")

    @pytest.mark.asyncio
    async def test_launch_failure(self, playwright_mocks):
        playwright_mocks["driver"].chromium.launch.side_effect = RuntimeError("no executable")
        session = BrowserSession(browser_kind=BrowserKind.CHROMIUM)

        with pytest.raises(InfrastructureError) as exc_info:
            await session.start()

        assert exc_info.value.phase == "browser_launch"
        assert "no executable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_screenshot(self, playwright_mocks):
        session = BrowserSession()
        await session.start()

        assert await session.screenshot() == b"png"
        playwright_mocks["page"].screenshot.assert_awaited_once_with(type="png", full_page=False)

    @pytest.mark.asyncio
    async def test_screenshot_before_start(self):
        with pytest.raises(RuntimeError, match="not started"):
            await BrowserSession().screenshot()

    @pytest.mark.asyncio
    async def test_close_never_raises(self, playwright_mocks):
        playwright_mocks["browser"].close.side_effect = RuntimeError("already closed")
        session = BrowserSession()
        await session.start()

        await session.close()

        assert not session.is_started
        assert session.browser is None
        playwright_mocks["driver"].stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager(self, playwright_mocks):
        async with BrowserSession() as session:
            assert session.is_started

        playwright_mocks["page"].close.assert_awaited_once()
