"""
Tests for the Playwright page driver, against mocked Playwright objects.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import ElementHandle, JSHandle, Page
from playwright.async_api import Error as PlaywrightError

from page_bridge.agents.dispatcher import TaskDispatcher
from page_bridge.browser.driver import EVAL_JS, IS_COLLECTION_JS, READ_JS, PageDriver
from page_bridge.errors import EvaluationError


def mock_page():
    page = MagicMock(spec=Page)
    page.url = "https://shop.example.com/cart"
    page.query_selector = AsyncMock()
    page.evaluate_handle = AsyncMock()
    page.goto = AsyncMock()
    return page


def mock_element():
    element = MagicMock(spec=ElementHandle)
    element.evaluate = AsyncMock()
    element.dispatch_event = AsyncMock()
    element.focus = AsyncMock()
    return element


def mock_value_handle(value, collection=False):
    handle = MagicMock(spec=JSHandle)
    handle.as_element.return_value = None
    handle.evaluate = AsyncMock(return_value=collection)
    handle.json_value = AsyncMock(return_value=value)
    handle.get_properties = AsyncMock()
    handle.dispose = AsyncMock()
    return handle


def mock_outcome(**properties):
    """The {value} or {error} object the in-page wrapper returns."""
    outcome = MagicMock(spec=JSHandle)
    outcome.get_properties = AsyncMock(return_value=properties)
    outcome.dispose = AsyncMock()
    return outcome


class TestPageDriver(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.page = mock_page()
        self.driver = PageDriver(self.page)

    def test_location_is_page_url(self):
        self.assertEqual(self.driver.location, "https://shop.example.com/cart")

    def test_is_element(self):
        self.assertTrue(self.driver.is_element(mock_element()))
        self.assertFalse(self.driver.is_element("<div></div>"))

    async def test_query(self):
        element = mock_element()
        self.page.query_selector.return_value = element

        self.assertIs(await self.driver.query("#box"), element)
        self.page.query_selector.assert_awaited_once_with("#box")

    async def test_dispatch_bubbles(self):
        element = mock_element()

        await self.driver.dispatch(element, "input")

        element.dispatch_event.assert_awaited_once_with("input", {"bubbles": True})

    async def test_set_and_append_value_run_in_page(self):
        element = mock_element()

        await self.driver.set_value(element, "x")
        await self.driver.append_value(element, "y")

        first, second = element.evaluate.await_args_list
        self.assertEqual(first.args[1], "x")
        self.assertIn("el.value = value", first.args[0])
        self.assertEqual(second.args[1], "y")
        self.assertIn("el.value += text", second.args[0])

    async def test_read(self):
        element = mock_element()
        element.evaluate.return_value = {"text": "Hi", "value": None, "html": "<b>Hi</b>"}

        result = await self.driver.read(element, include_html=True)

        self.assertEqual(result["html"], "<b>Hi</b>")
        element.evaluate.assert_awaited_once_with(READ_JS, True)

    async def test_evaluate_plain_value(self):
        handle = mock_value_handle(42)
        outcome = mock_outcome(value=handle)
        self.page.evaluate_handle.return_value = outcome

        self.assertEqual(await self.driver.evaluate("6 * 7"), 42)
        self.page.evaluate_handle.assert_awaited_once_with(EVAL_JS, "6 * 7")
        handle.evaluate.assert_awaited_once_with(IS_COLLECTION_JS)
        handle.dispose.assert_awaited_once()
        outcome.dispose.assert_awaited_once()

    async def test_evaluate_element(self):
        element = mock_element()
        handle = mock_value_handle(None)
        handle.as_element.return_value = element
        self.page.evaluate_handle.return_value = mock_outcome(value=handle)

        self.assertIs(await self.driver.evaluate("document.body"), element)

    async def test_evaluate_collection(self):
        element = mock_element()
        first = mock_value_handle(None)
        first.as_element.return_value = element
        second = mock_value_handle("text")
        handle = mock_value_handle(None, collection=True)
        handle.get_properties.return_value = {"1": second, "0": first, "length": mock_value_handle(2)}
        self.page.evaluate_handle.return_value = mock_outcome(value=handle)

        result = await self.driver.evaluate("[document.body, 'text']")

        self.assertEqual(result, [element, "text"])

    async def test_evaluate_without_value(self):
        self.page.evaluate_handle.return_value = mock_outcome()

        self.assertIsNone(await self.driver.evaluate("void 0"))

    async def test_evaluate_error_keeps_page_message(self):
        message = "nope is not defined\nwhile reading the second line"
        outcome = mock_outcome(error=mock_value_handle(message))
        self.page.evaluate_handle.return_value = outcome

        with self.assertRaises(EvaluationError) as ctx:
            await self.driver.evaluate("nope")

        self.assertEqual(str(ctx.exception), message)
        outcome.dispose.assert_awaited_once()

    async def test_evaluate_error_from_non_error_throw(self):
        self.page.evaluate_handle.return_value = mock_outcome(error=mock_value_handle("plain string"))

        with self.assertRaises(EvaluationError) as ctx:
            await self.driver.evaluate("throw 'plain string'")

        self.assertEqual(str(ctx.exception), "plain string")

    async def test_evaluate_transport_failure_is_not_rewritten(self):
        # What Playwright raises when the call itself fails, not the expression
        error = PlaywrightError(
            "Page.evaluate_handle: Target page, context or browser has been closed\n"
            "Call log:\n  - waiting for page"
        )
        self.page.evaluate_handle.side_effect = error

        with self.assertRaises(PlaywrightError) as ctx:
            await self.driver.evaluate("1 + 1")

        self.assertIs(ctx.exception, error)

    async def test_dispatched_eval_error_is_page_message(self):
        self.page.evaluate_handle.return_value = mock_outcome(
            error=mock_value_handle("nope is not defined")
        )
        dispatcher = TaskDispatcher(self.driver)

        result = await dispatcher.dispatch({"type": "task", "taskId": "t1", "code": "nope"})

        self.assertEqual(result.to_frame(), {
            "type": "result", "taskId": "t1", "error": "nope is not defined"
        })

    async def test_schedule_navigation(self):
        self.driver.schedule_navigation("https://shop.example.com/next", 0)
        await asyncio.sleep(0.01)

        self.page.goto.assert_awaited_once_with("https://shop.example.com/next")

    def test_context_lost_on_new_document(self):
        listener = MagicMock()
        self.driver.on_context_lost(listener)

        event, callback = self.page.on.call_args.args
        self.assertEqual(event, "domcontentloaded")
        callback(self.page)

        listener.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
