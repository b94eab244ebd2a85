"""
page-bridge: open a page in Chromium and hand it to a remote operator.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from playwright.async_api import async_playwright

from page_bridge.browser.bridge import PageBridge
from page_bridge.browser.driver import PageDriver
from page_bridge.config import BridgeConfig
from page_bridge.utils.endpoint import operator_url_for

logger = logging.getLogger("pagebridge.agent")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="page-bridge",
        description="Attach a remote-control agent to a web page."
    )
    parser.add_argument("url", help="Page to open")
    parser.add_argument("--operator-url", help="Operator WebSocket URL (default: wss://admin.<host>/bridge)")
    parser.add_argument("--headless", action="store_true", help="Run Chromium without a window")
    parser.add_argument("--reconnect-delay", type=float, help="Seconds between reconnect attempts")
    parser.add_argument("--no-eval", action="store_true", help="Reject raw expressions and eval actions")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def config_from_args(args: argparse.Namespace) -> BridgeConfig:
    config = BridgeConfig.from_env()
    if args.operator_url:
        config.operator_url = args.operator_url
    if args.reconnect_delay is not None:
        config.reconnect_delay = args.reconnect_delay
    if args.no_eval:
        config.allow_eval = False
    return config


async def run(url: str, config: BridgeConfig, headless: bool = False):
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless)
        try:
            page = await browser.new_page()
            await page.goto(url, wait_until="domcontentloaded")
            logger.info(f"Opened {page.url}")

            try:
                bridge = PageBridge(PageDriver(page), config=config)
            except ValueError as e:
                # Redirected somewhere no endpoint can be derived from
                logger.error(str(e))
                return
            bridge.connect()
            try:
                await bridge.wait_closed()
            finally:
                await bridge.stop()
        finally:
            await browser.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s %(levelname)s: %(message)s",
        level=args.log_level.upper(),
        stream=sys.stdout
    )

    try:
        config = config_from_args(args)
    except ValueError as e:
        logger.error(str(e))
        return 2

    if config.operator_url is None:
        try:
            operator_url_for(args.url)
        except ValueError as e:
            logger.error(f"{e}; pass --operator-url")
            return 2

    try:
        asyncio.run(run(args.url, config, headless=args.headless))
    except KeyboardInterrupt:
        print("Bridge stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
