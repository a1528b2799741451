"""
Playwright browser session owned by a single run.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from qualitypilot.config.settings import get_settings
from qualitypilot.core.types import BrowserKind, RunOptions
from qualitypilot.error_handling.exceptions import InfrastructureError
from qualitypilot.monitoring.logger import get_logger, log_performance_metric


CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class BrowserSession:
    """Isolated browser, context and page for one run."""

    def __init__(
        self,
        browser_kind: Optional[BrowserKind] = None,
        headless: Optional[bool] = None,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        timeout: Optional[int] = None,
        record_video_dir: Optional[Path] = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            browser_kind: Browser engine to launch
            headless: Run browser in headless mode
            viewport_width: Browser viewport width
            viewport_height: Browser viewport height
            timeout: Default timeout in milliseconds
            record_video_dir: Directory for the context's video recording
        """
        settings = get_settings()
        self.browser_kind = BrowserKind(browser_kind or settings.browser_kind)
        self.headless = headless if headless is not None else settings.browser_headless
        self.viewport_width = viewport_width or settings.browser_viewport_width
        self.viewport_height = viewport_height or settings.browser_viewport_height
        self.timeout = timeout or settings.browser_timeout
        self.record_video_dir = record_video_dir

        self.logger = get_logger("browser.session")
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self.video_path: Optional[str] = None

    @classmethod
    def from_options(
        cls, options: RunOptions, record_video_dir: Optional[Path] = None
    ) -> "BrowserSession":
        """Build a session for a run's requested options."""
        return cls(
            browser_kind=options.browser,
            headless=options.headless,
            viewport_width=options.viewport.width if options.viewport else None,
            viewport_height=options.viewport.height if options.viewport else None,
            timeout=options.timeout,
            record_video_dir=record_video_dir,
        )

    @property
    def page(self) -> Optional[Page]:
        return self._page

    @property
    def context(self) -> Optional[BrowserContext]:
        return self._context

    @property
    def browser(self) -> Optional[Browser]:
        return self._browser

    @property
    def is_started(self) -> bool:
        return self._page is not None

    async def start(self) -> Page:
        """Launch the browser and open a page; raises InfrastructureError."""
        start_time = asyncio.get_event_loop().time()
        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()

            if self._browser is None:
                self.logger.info(
                    "Starting browser",
                    extra={
                        "browser": self.browser_kind.value,
                        "headless": self.headless,
                        "viewport": f"{self.viewport_width}x{self.viewport_height}",
                    },
                )
                engine = getattr(self._playwright, self.browser_kind.value)
                launch_kwargs: Dict[str, Any] = {"headless": self.headless}
                if self.browser_kind is BrowserKind.CHROMIUM:
                    launch_kwargs["args"] = CHROMIUM_LAUNCH_ARGS
                self._browser = await engine.launch(**launch_kwargs)

            if self._context is None:
                context_kwargs: Dict[str, Any] = {
                    "viewport": {
                        "width": self.viewport_width,
                        "height": self.viewport_height,
                    },
                }
                if self.record_video_dir is not None:
                    self.record_video_dir.mkdir(parents=True, exist_ok=True)
                    context_kwargs["record_video_dir"] = str(self.record_video_dir)
                self._context = await self._browser.new_context(**context_kwargs)
                self._context.set_default_timeout(self.timeout)

            if self._page is None:
                self._page = await self._context.new_page()
        except Exception as exc:
            raise InfrastructureError(
                f"Failed to launch {self.browser_kind.value} browser: {exc}",
                phase="browser_launch",
                cause=exc,
            ) from exc

        elapsed_ms = (asyncio.get_event_loop().time() - start_time) * 1000
        log_performance_metric(
            "browser_launch", elapsed_ms, context={"browser": self.browser_kind.value}
        )
        return self._page

    async def screenshot(self) -> bytes:
        """Take a viewport screenshot and return PNG bytes."""
        if not self._page:
            raise RuntimeError("Browser not started. Call start() first.")
        return await self._page.screenshot(type="png", full_page=False)

    async def close(self) -> None:
        """Close page, context, browser and driver; never raises."""
        if self._page is not None:
            video = self._page.video
            try:
                await self._page.close()
            except Exception:
                self.logger.warning("Error closing page", exc_info=True)
            if video is not None:
                try:
                    self.video_path = str(await video.path())
                except Exception:
                    self.logger.warning("Could not resolve video path", exc_info=True)
            self._page = None

        if self._context is not None:
            try:
                await self._context.close()
            except Exception:
                self.logger.warning("Error closing browser context", exc_info=True)
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:
                self.logger.warning("Error closing browser", exc_info=True)
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                self.logger.warning("Error stopping Playwright", exc_info=True)
            self._playwright = None

        self.logger.info("Browser session closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
