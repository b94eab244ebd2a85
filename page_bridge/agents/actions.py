"""
Page Actions - the operator's command vocabulary

Each action tag maps to one async handler that drives the page through a
PageDriver. The tag set is closed; unknown tags are rejected rather than ignored.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from page_bridge.errors import (
    ElementNotFoundError,
    EvaluationDisabledError,
    MissingFieldError,
    UnknownActionError,
    WaitTimeoutError,
)

logger = logging.getLogger("pagebridge.agent")

# Wire defaults, in milliseconds
NAVIGATE_DELAY_MS = 50
TYPE_DELAY_MS = 20
WAIT_TIMEOUT_MS = 10000
WAIT_POLL_MS = 100

ActionHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class ActionType(str, Enum):
    NAVIGATE = "navigate"
    FILL = "fill"
    CLICK = "click"
    TYPE = "type"
    WAIT = "wait"
    EVAL = "eval"
    GET = "get"


def _require(action: Dict[str, Any], field: str) -> Any:
    value = action.get(field)
    if value is None:
        raise MissingFieldError(field)
    return value


def _millis(value: Optional[Any], default: int) -> float:
    """Seconds for a millisecond wire value, falling back when absent."""
    if value is None:
        return default / 1000
    return float(value) / 1000


class UnsafeEvaluator:
    """
    Capability to run operator-supplied expressions with full page privileges.

    Only constructed when evaluation is allowed; holders of this object can do
    anything the page can.
    """

    def __init__(self, driver):
        self.driver = driver

    async def evaluate(self, code: str) -> Any:
        logger.debug(f"Evaluating operator expression ({len(code)} chars)")
        return await self.driver.evaluate(code)


class PageActions:
    """Handlers for every ActionType, bound to one page."""

    def __init__(self, driver, evaluator: Optional[UnsafeEvaluator] = None):
        self.driver = driver
        self.evaluator = evaluator

    async def _element(self, action: Dict[str, Any]):
        selector = _require(action, "selector")
        element = await self.driver.query(selector)
        if element is None:
            raise ElementNotFoundError(selector)
        return selector, element

    async def navigate(self, action: Dict[str, Any]) -> Dict[str, Any]:
        url = _require(action, "url")
        # Delayed so the result frame leaves before the page unloads
        self.driver.schedule_navigation(url, NAVIGATE_DELAY_MS / 1000)
        return {"navigating": url}

    async def fill(self, action: Dict[str, Any]) -> Dict[str, Any]:
        selector, element = await self._element(action)
        value = action.get("value")
        await self.driver.set_value(element, value)
        await self.driver.dispatch(element, "input")
        await self.driver.dispatch(element, "change")
        return {"filled": selector, "value": value}

    async def click(self, action: Dict[str, Any]) -> Dict[str, Any]:
        selector, element = await self._element(action)
        await self.driver.click(element)
        return {"clicked": selector}

    async def type(self, action: Dict[str, Any]) -> Dict[str, Any]:
        """Type one character at a time, firing input after each keystroke."""
        _, element = await self._element(action)
        text = str(action.get("text") or "")
        delay = _millis(action.get("delay"), TYPE_DELAY_MS)

        await self.driver.focus(element)
        for char in text:
            await self.driver.append_value(element, char)
            await self.driver.dispatch(element, "input")
            await asyncio.sleep(delay)

        return {"typed": f"{len(text)} chars"}

    async def wait(self, action: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Wait for an element or for a fixed time.

        A selector always selects poll mode, even when ``ms`` is also given.
        """
        selector = action.get("selector")
        if selector:
            return await self._wait_for(selector, _millis(action.get("timeout"), WAIT_TIMEOUT_MS))

        ms = action.get("ms")
        if ms:
            await asyncio.sleep(float(ms) / 1000)
            return {"waited": ms}

        return None

    async def _wait_for(self, selector: str, timeout: float) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if await self.driver.query(selector) is not None:
                return {"found": selector}
            if loop.time() >= deadline:
                raise WaitTimeoutError(selector)
            await asyncio.sleep(WAIT_POLL_MS / 1000)

    async def eval(self, action: Dict[str, Any]) -> Any:
        code = _require(action, "code")
        if self.evaluator is None:
            raise EvaluationDisabledError()
        return await self.evaluator.evaluate(code)

    async def get(self, action: Dict[str, Any]) -> Dict[str, Any]:
        _, element = await self._element(action)
        return await self.driver.read(element, include_html=bool(action.get("html")))


class ActionRegistry:
    """Maps each ActionType to its handler."""

    def __init__(self, actions: PageActions):
        self._handlers: Dict[ActionType, ActionHandler] = {
            ActionType.NAVIGATE: actions.navigate,
            ActionType.FILL: actions.fill,
            ActionType.CLICK: actions.click,
            ActionType.TYPE: actions.type,
            ActionType.WAIT: actions.wait,
            ActionType.EVAL: actions.eval,
            ActionType.GET: actions.get,
        }

    def register(self, action_type: ActionType, handler: ActionHandler):
        """Bind a different handler to an existing tag."""
        self._handlers[ActionType(action_type)] = handler

    def resolve(self, tag: Any) -> ActionHandler:
        try:
            return self._handlers[ActionType(tag)]
        except (ValueError, TypeError, KeyError):
            raise UnknownActionError(tag) from None

    def __contains__(self, tag: Any) -> bool:
        try:
            return ActionType(tag) in self._handlers
        except (ValueError, TypeError):
            return False
