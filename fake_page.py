"""
In-memory stand-in for PageDriver, used by the tests.
"""

import asyncio
from typing import Any, Dict, List, Optional


class FakeElement:
    def __init__(self, tag: str = "input", value: Any = "", text: str = "", html: str = ""):
        self.tag = tag
        self.value = value
        self.text = text
        self.inner_html = html
        self.events: List[str] = []
        self.clicks = 0
        self.focused = False

    @property
    def outer_html(self) -> str:
        return f"<{self.tag}>{self.inner_html}</{self.tag}>"


class FakeDriver:
    def __init__(self, location: str = "https://shop.example.com/cart"):
        self.location = location
        self.elements: Dict[str, FakeElement] = {}
        # code -> value, or an exception instance to raise
        self.expressions: Dict[str, Any] = {}
        self.navigations: List[tuple] = []
        self._context_listeners = []

    def add(self, selector: str, element: Optional[FakeElement] = None) -> FakeElement:
        element = element or FakeElement()
        self.elements[selector] = element
        return element

    def add_later(self, selector: str, delay: float, element: Optional[FakeElement] = None):
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.add, selector, element)

    def lose_context(self, location: str):
        self.location = location
        for callback in list(self._context_listeners):
            callback()

    def is_element(self, value: Any) -> bool:
        return isinstance(value, FakeElement)

    async def query(self, selector: str) -> Optional[FakeElement]:
        await asyncio.sleep(0)
        return self.elements.get(selector)

    async def set_value(self, element: FakeElement, value: Any):
        element.value = value

    async def append_value(self, element: FakeElement, text: str):
        element.value += text

    async def dispatch(self, element: FakeElement, event_type: str):
        element.events.append(event_type)

    async def click(self, element: FakeElement):
        element.clicks += 1

    async def focus(self, element: FakeElement):
        element.focused = True

    async def read(self, element: FakeElement, include_html: bool = False) -> Dict[str, Any]:
        out = {"text": element.text, "value": element.value}
        if include_html:
            out["html"] = element.inner_html
        return out

    async def outer_html(self, element: FakeElement) -> str:
        return element.outer_html

    async def evaluate(self, code: str) -> Any:
        await asyncio.sleep(0)
        value = self.expressions.get(code)
        if isinstance(value, Exception):
            raise value
        return value

    def schedule_navigation(self, url: str, delay: float):
        self.navigations.append((url, delay))

    def on_context_lost(self, callback):
        self._context_listeners.append(callback)
