"""
Command line front end: open a page in Chromium and save it as a .docx.

    pagedocx https://example.com/article --auto-scroll --output-dir out/
"""

import argparse
import asyncio
import logging
import sys

from playwright.async_api import async_playwright

from pagedocx import __version__
from pagedocx.core.config import Settings
from pagedocx.core.engine import ExportEngine
from pagedocx.core.page import LivePage
from pagedocx.plugins.word_export.plugin import save_to_directory

logger = logging.getLogger("pagedocx")


def build_parser():
    parser = argparse.ArgumentParser(prog="pagedocx", description="Export a live web page to a Word document.")
    parser.add_argument("url", help="Page to capture")
    parser.add_argument("--auto-scroll", action="store_true", help="Scroll the page first to trigger lazy loading")
    parser.add_argument("--output-dir", help="Directory the .docx is written to")
    parser.add_argument("--config", help="Path to a pagedocx.json settings file")
    parser.add_argument("--headed", dest="headless", action="store_false", default=None,
                        help="Show the browser window")
    parser.add_argument("--headless", dest="headless", action="store_true", help="Run the browser hidden")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def open_page(browser, url, settings):
    context = await browser.new_context(
        viewport=settings.get("viewport"),
        user_agent=settings.get("user_agent"),
    )
    page = await context.new_page()
    timeout = settings.get("navigation_timeout_ms")
    try:
        await page.goto(url, wait_until="networkidle", timeout=timeout)
    except Exception:
        logger.warning(f"{url} did not go idle, continuing once the DOM is loaded")
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            await page.wait_for_timeout(2000)
        except Exception as e:
            raise RuntimeError(f"Failed to load {url}: {e}") from e
    return page


def print_event(event):
    action = event.get("action")
    if action == "log":
        print(f"  {event['message']}")
    elif action == "export_done":
        print(f"Saved: {event.get('path')}")
    elif action == "export_error":
        print(f"Export failed: {event.get('message')}", file=sys.stderr)
    else:
        logger.debug(f"Event: {action}")


async def export_url(url, settings, auto_scroll=False):
    """Capture ``url`` once. Returns True when a document was delivered."""
    events = []

    def emit(event):
        events.append(event)
        print_event(event)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=settings.get("headless"))
        try:
            page = await open_page(browser, url, settings)
            live_page = LivePage(page)
            engine = ExportEngine.attach(
                live_page, emit, save_to_directory(settings.output_dir), settings=settings
            )
            response = engine.handle_message({"action": "start_export", "config": {"autoScroll": auto_scroll}})
            if response != {"status": "started"}:
                logger.error(f"Export did not start: {response}")
                return False
            await engine.wait_idle()
        finally:
            await browser.close()

    return any(e.get("action") == "export_done" for e in events)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
        stream=sys.stdout,
    )

    settings = Settings(args.config).override(output_dir=args.output_dir, headless=args.headless)
    try:
        ok = asyncio.run(export_url(args.url, settings, auto_scroll=args.auto_scroll))
    except Exception as e:
        logger.error(f"{e}")
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
