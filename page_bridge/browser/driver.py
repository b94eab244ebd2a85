"""
Page Driver

Thin façade over a Playwright page: query, mutate, dispatch events and evaluate
expressions. Every action handler goes through this class.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from playwright.async_api import ElementHandle, JSHandle, Page
from playwright.async_api import Error as PlaywrightError

from page_bridge.errors import EvaluationError

logger = logging.getLogger("pagebridge.agent")

# Indirect eval runs in the page's global scope; a throw comes back as its message
EVAL_JS = """async code => {
    try {
        return { value: await (0, eval)(code) };
    } catch (e) {
        return { error: e instanceof Error ? e.message : String(e) };
    }
}"""
IS_COLLECTION_JS = "value => value instanceof NodeList || Array.isArray(value)"
READ_JS = """(el, html) => {
    const out = { text: el.innerText, value: el.value };
    if (html) out.html = el.innerHTML;
    return out;
}"""


class PageDriver:
    """DOM primitives for one page."""

    def __init__(self, page: Page):
        self.page = page
        self._navigations: Set[asyncio.Task] = set()
        self._context_listeners: List[Callable[[], None]] = []
        self.page.on("domcontentloaded", self._on_document_loaded)

    @property
    def location(self) -> str:
        return self.page.url

    def is_element(self, value: Any) -> bool:
        return isinstance(value, ElementHandle)

    async def query(self, selector: str) -> Optional[ElementHandle]:
        return await self.page.query_selector(selector)

    async def set_value(self, element: ElementHandle, value: Any):
        await element.evaluate("(el, value) => { el.value = value; }", value)

    async def append_value(self, element: ElementHandle, text: str):
        await element.evaluate("(el, text) => { el.value += text; }", text)

    async def dispatch(self, element: ElementHandle, event_type: str):
        await element.dispatch_event(event_type, {"bubbles": True})

    async def click(self, element: ElementHandle):
        await element.evaluate("el => el.click()")

    async def focus(self, element: ElementHandle):
        await element.focus()

    async def read(self, element: ElementHandle, include_html: bool = False) -> Dict[str, Any]:
        return await element.evaluate(READ_JS, include_html)

    async def outer_html(self, element: ElementHandle) -> str:
        return await element.evaluate("el => el.outerHTML")

    async def evaluate(self, code: str) -> Any:
        """
        Evaluate an expression in the page and bring its value back.

        Elements stay handles so the caller can serialize them; arrays and
        NodeLists become lists.
        """
        outcome = await self.page.evaluate_handle(EVAL_JS, code)
        try:
            properties = await outcome.get_properties()
        finally:
            await outcome.dispose()

        if "error" in properties:
            message = await properties["error"].json_value()
            raise EvaluationError(message)

        handle = properties.get("value")
        if handle is None:
            return None

        element = handle.as_element()
        if element is not None:
            return element

        try:
            if await handle.evaluate(IS_COLLECTION_JS):
                return await self._collect(handle)
            return await handle.json_value()
        finally:
            await handle.dispose()

    async def _collect(self, handle: JSHandle) -> List[Any]:
        properties = await handle.get_properties()
        items = []
        for key in sorted((k for k in properties if k.isdigit()), key=int):
            member = properties[key]
            element = member.as_element()
            if element is not None:
                items.append(element)
            else:
                items.append(await member.json_value())
                await member.dispose()
        return items

    def schedule_navigation(self, url: str, delay: float):
        task = asyncio.ensure_future(self._navigate_later(url, delay))
        self._navigations.add(task)
        task.add_done_callback(self._navigations.discard)

    async def _navigate_later(self, url: str, delay: float):
        await asyncio.sleep(delay)
        try:
            await self.page.goto(url)
        except PlaywrightError as e:
            logger.error(f"Navigation to {url} failed: {e}")

    def on_context_lost(self, callback: Callable[[], None]):
        """Call ``callback`` whenever the page loads a new document."""
        self._context_listeners.append(callback)

    def _on_document_loaded(self, *args):
        logger.info(f"Page loaded a new document: {self.page.url}")
        for callback in list(self._context_listeners):
            callback()
