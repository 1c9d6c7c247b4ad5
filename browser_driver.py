"""
Target-surface driver for the replay engine.

The engine only talks to the SurfaceDriver / SurfaceSession interfaces;
PlaywrightDriver implements them with one Chromium instance per session
launched with anti-detection flags.
"""

from __future__ import annotations

import logging
import random
from typing import Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

import replay_config

logger = logging.getLogger(__name__)

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--start-maximized",
]

ANTI_DETECT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
"""


class SurfaceSession(Protocol):
    """
    An exclusively owned handle on one page.

    Every method may raise; the engine decides which failures are fatal.
    """

    async def navigate(self, url: str) -> None:
        ...

    async def click_at(self, x: float, y: float) -> None:
        ...

    async def click_element(self, selector: str) -> None:
        ...

    async def focus_element(self, selector: str) -> None:
        ...

    async def type_text(self, text: str, per_char_delay_ms: float) -> None:
        ...

    async def close(self) -> None:
        ...


class SurfaceDriver(Protocol):
    async def open_session(self) -> SurfaceSession:
        ...


async def create_context(browser: Browser) -> BrowserContext:
    """Create a browser context with anti-detection settings."""
    vw = 1920 + random.randint(-100, 100)
    vh = 1080 + random.randint(-100, 100)

    return await browser.new_context(
        viewport={"width": vw, "height": vh},
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        locale="en-US",
        timezone_id="America/New_York",
    )


class PlaywrightSession:
    """A single Chromium page driven through the Playwright async API."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        page: Page,
        navigation_timeout_ms: int,
        wait_until: str,
        step_timeout_ms: int,
        click_hold_ms: float,
    ):
        self._playwright = playwright
        self._browser = browser
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until
        self.step_timeout_ms = step_timeout_ms
        self.click_hold_ms = click_hold_ms

    async def navigate(self, url: str) -> None:
        await self.page.goto(url, wait_until=self.wait_until, timeout=self.navigation_timeout_ms)

    async def click_at(self, x: float, y: float) -> None:
        await self.page.mouse.click(x, y, delay=self.click_hold_ms)

    async def click_element(self, selector: str) -> None:
        await self.page.click(selector, delay=self.click_hold_ms, timeout=self.step_timeout_ms)

    async def focus_element(self, selector: str) -> None:
        await self.page.focus(selector, timeout=self.step_timeout_ms)

    async def type_text(self, text: str, per_char_delay_ms: float) -> None:
        await self.page.keyboard.type(text, delay=per_char_delay_ms)

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightDriver:
    """Opens a fresh browser for every replay session."""

    def __init__(
        self,
        headless: bool | None = None,
        navigation_timeout_ms: int | None = None,
        wait_until: str | None = None,
        step_timeout_ms: int | None = None,
        click_hold_ms: float | None = None,
    ):
        self.headless = headless if headless is not None else replay_config.HEADLESS
        self.navigation_timeout_ms = navigation_timeout_ms or replay_config.NAVIGATION_TIMEOUT_MS
        self.wait_until = wait_until or replay_config.NAVIGATION_WAIT_UNTIL
        self.step_timeout_ms = step_timeout_ms or replay_config.STEP_TIMEOUT_MS
        self.click_hold_ms = (
            click_hold_ms if click_hold_ms is not None else replay_config.CLICK_HOLD_MS
        )

    async def open_session(self) -> PlaywrightSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
            ctx = await create_context(browser)
            page = await ctx.new_page()
            await page.add_init_script(ANTI_DETECT_SCRIPT)
        except Exception as e:
            error_msg = str(e)
            if "playwright install" in error_msg.lower() or "executable doesn't exist" in error_msg.lower():
                logger.error("Playwright browsers not installed! Please run: playwright install chromium")
            await playwright.stop()
            raise

        mode = "headless" if self.headless else "visible"
        logger.info(f"Playwright browser launched ({mode} mode)")
        return PlaywrightSession(
            playwright,
            browser,
            page,
            navigation_timeout_ms=self.navigation_timeout_ms,
            wait_until=self.wait_until,
            step_timeout_ms=self.step_timeout_ms,
            click_hold_ms=self.click_hold_ms,
        )
