"""Browser session management"""

from contextlib import asynccontextmanager

from playwright.async_api import async_playwright

import fpl_meter_status.config as config


@asynccontextmanager
async def open_session(headless=None):
    """
    Launch a fresh Chromium context and yield its page.

    The browser is always closed on exit, whether the body finished
    normally or raised. Every lookup or batch owns exactly one session.
    """
    if headless is None:
        headless = config.HEADLESS

    print(f"Launching browser (headless={headless})...")
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=headless,
            args=["--disable-blink-features=AutomationControlled"],
        )
        try:
            context = await browser.new_context(
                viewport={"width": 1280, "height": 900},
                user_agent=config.USER_AGENT,
                locale="en-US",
                timezone_id="America/New_York",
            )
            page = await context.new_page()
            page.set_default_timeout(config.TIMING["navigation_timeout"])
            yield page
        finally:
            await browser.close()
            print("Browser closed")
