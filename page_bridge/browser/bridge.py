"""
Page Bridge - operator connection for an attached page

Keeps one WebSocket open to the operator endpoint, announces the page with a
hello, and runs every task the operator sends against the page. Closed channels
are reopened after a fixed delay, forever.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Set, Union

try:
    import websockets
    from websockets.exceptions import ConnectionClosed, WebSocketException
except ImportError:
    websockets = None
    ConnectionClosed = WebSocketException = None

from page_bridge.agents.dispatcher import TaskDispatcher
from page_bridge.config import BridgeConfig
from page_bridge.protocol import (
    WELCOME,
    ProtocolError,
    decode_frame,
    encode_frame,
    hello_frame,
)
from page_bridge.utils.endpoint import operator_url_for

logger = logging.getLogger("pagebridge.agent")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class PageBridge:
    """
    WebSocket client that lets a remote operator drive one page.

    Lifecycle: ``CLOSED -> CONNECTING -> OPEN -> CLOSED -> (delay) -> CONNECTING``.
    Tasks run concurrently; a task still running when its channel closes is
    cancelled and never answered.
    """

    def __init__(
        self,
        driver,
        url: Optional[str] = None,
        config: Optional[BridgeConfig] = None,
        connector: Optional[Callable[..., Any]] = None
    ):
        if websockets is None:
            raise ImportError(
                "websockets package required. Install with: pip install websockets"
            )

        self.driver = driver
        self.config = config or BridgeConfig()
        self._derive_url = url is None and self.config.operator_url is None
        self.url = url or self.config.operator_url or operator_url_for(driver.location)
        self.dispatcher = TaskDispatcher(driver, allow_eval=self.config.allow_eval)

        self.state = ConnectionState.CLOSED
        self.websocket = None
        self.client_id: Optional[str] = None

        self._connector = connector or websockets.connect
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._reattach_pending = False
        self._stopped = False
        self._closed_event = asyncio.Event()

        driver.on_context_lost(self.reattach)

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.OPEN and self.websocket is not None

    def connect(self):
        """Open the channel unless one is already open or being opened."""
        if self._stopped:
            return
        if self.state != ConnectionState.CLOSED:
            logger.debug(f"PageBridge connect() ignored while {self.state.value}")
            return

        self._cancel_reconnect()
        self.state = ConnectionState.CONNECTING
        self._reader = asyncio.ensure_future(self._run())

    async def _run(self):
        try:
            websocket = await self._connector(
                self.url,
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"PageBridge connection error: {e}")
            self._on_closed()
            return

        self.websocket = websocket
        self.state = ConnectionState.OPEN
        logger.info(f"PageBridge connected to {self.url}")

        try:
            if self._reattach_pending:
                # The page moved on while this channel was opening
                await websocket.close()
                return
            await websocket.send(encode_frame(hello_frame(self.driver.location)))
            async for message in websocket:
                self._handle_message(websocket, message)
        except ConnectionClosed as e:
            logger.warning(f"PageBridge connection lost: {e}")
        finally:
            self._on_closed()

    def _handle_message(self, websocket, message: Union[str, bytes]):
        try:
            frame = decode_frame(message)
        except ProtocolError as e:
            logger.error(f"PageBridge message error: {e}")
            return

        if frame["type"] == WELCOME:
            self.client_id = frame.get("clientId")
            logger.info(f"PageBridge assigned client ID: {self.client_id}")
            return

        # Tasks never block the reader; results may go out in any order
        task = asyncio.ensure_future(self._run_task(websocket, frame))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_task(self, websocket, frame):
        result = await self.dispatcher.dispatch(frame)

        if websocket is not self.websocket:
            logger.warning(f"Dropping result for task {result.task_id}: channel closed")
            return
        try:
            await websocket.send(encode_frame(result.to_frame()))
        except ConnectionClosed:
            logger.warning(f"Dropping result for task {result.task_id}: channel closed")

    def _abandon_tasks(self):
        if self._in_flight:
            logger.info(f"PageBridge abandoning {len(self._in_flight)} in-flight task(s)")
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()

    def _on_closed(self):
        self._abandon_tasks()
        self.websocket = None
        self.client_id = None
        self.state = ConnectionState.CLOSED

        if self._stopped:
            return
        if self._reattach_pending:
            self._reattach_pending = False
            self.connect()
            return

        logger.info(f"PageBridge disconnected, reconnecting in {self.config.reconnect_delay}s...")
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.config.reconnect_delay, self._reconnect)

    def _reconnect(self):
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def reattach(self):
        """
        Start over after the page loaded a new document.

        In-flight tasks are abandoned and a fresh channel (and hello) follows
        immediately, without the reconnect delay.
        """
        if self._stopped:
            return
        logger.info(f"PageBridge reattaching to {self.driver.location}")
        self._abandon_tasks()

        previous_url = self.url
        if self._derive_url:
            try:
                self.url = operator_url_for(self.driver.location)
            except ValueError as e:
                logger.warning(f"Keeping operator endpoint {self.url}: {e}")

        if self.state == ConnectionState.OPEN and self.websocket is not None:
            self._reattach_pending = True
            asyncio.ensure_future(self.websocket.close())
        elif self.state == ConnectionState.CONNECTING:
            # A pending attempt to the old endpoint is dropped once it settles
            if self.url != previous_url:
                self._reattach_pending = True
        else:
            self.connect()

    async def stop(self):
        """Close the channel for good; no reconnect follows."""
        self._stopped = True
        self._cancel_reconnect()
        self._abandon_tasks()

        reader = self._reader
        if self.state == ConnectionState.CONNECTING and reader is not None:
            reader.cancel()
        if self.websocket is not None:
            await self.websocket.close()
        if reader is not None:
            await asyncio.gather(reader, return_exceptions=True)

        self.websocket = None
        self.client_id = None
        self.state = ConnectionState.CLOSED
        self._closed_event.set()
        logger.info("PageBridge stopped")

    async def wait_closed(self):
        await self._closed_event.wait()
