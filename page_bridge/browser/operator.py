"""
Operator endpoint

Minimal WebSocket server on the other end of a PageBridge: issues a fresh client
ID for every hello, sends tasks and resolves their results by task ID. Used for
local driving and integration tests; it has no authentication or scheduling.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional

try:
    import websockets
    from websockets.exceptions import ConnectionClosed
except ImportError:
    websockets = None
    ConnectionClosed = None

from page_bridge.protocol import (
    HELLO,
    OPERATOR_TYPES,
    ProtocolError,
    decode_frame,
    encode_frame,
    task_frame,
    welcome_frame,
)

logger = logging.getLogger("pagebridge.agent")


class OperatorServer:
    """
    WebSocket server that page agents connect to.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 9333):
        if websockets is None:
            raise ImportError(
                "websockets package required. Install with: pip install websockets"
            )

        self.host = host
        self.port = port
        self.server = None
        # client_id -> {"websocket": ..., "url": ...}
        self.clients: Dict[str, Dict[str, Any]] = {}
        self._task_counter = 0
        # task_id -> (client_id, future)
        self._pending_tasks: Dict[str, Any] = {}
        self._hello_waiters: list = []

    async def serve(self):
        """Start listening on the current event loop."""
        self.server = await websockets.serve(
            self._handle_agent,
            self.host,
            self.port,
            ping_interval=20,
            ping_timeout=10
        )
        # Port 0 asks the OS for a free port
        self.port = self.server.sockets[0].getsockname()[1]
        logger.info(f"OperatorServer listening on ws://{self.host}:{self.port}")

    async def close(self):
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}/bridge"

    # Agent connections

    async def _handle_agent(self, websocket):
        client_id = None
        logger.info(f"Page agent connecting from {websocket.remote_address}")

        try:
            async for message in websocket:
                try:
                    frame = decode_frame(message, accepted=OPERATOR_TYPES)
                except ProtocolError as e:
                    logger.error(f"OperatorServer dropped frame: {e}")
                    continue

                if frame["type"] == HELLO:
                    client_id = uuid.uuid4().hex
                    self.clients[client_id] = {"websocket": websocket, "url": frame.get("url")}
                    await websocket.send(encode_frame(welcome_frame(client_id)))
                    logger.info(f"Page agent {client_id} says hello from {frame.get('url')}")
                    self._notify_hello(client_id)
                else:
                    self._resolve(frame)
        except ConnectionClosed as e:
            logger.warning(f"Page agent {client_id} disconnected: {e}")
        finally:
            if client_id is not None:
                self.clients.pop(client_id, None)
                self._fail_pending(client_id)

    def _resolve(self, frame: Dict[str, Any]):
        entry = self._pending_tasks.pop(frame.get("taskId"), None)
        if entry is None:
            logger.warning(f"Result for unknown task: {frame.get('taskId')}")
            return
        _, future = entry
        if not future.done():
            future.set_result(frame)

    def _fail_pending(self, client_id: str):
        for task_id, (owner, future) in list(self._pending_tasks.items()):
            if owner != client_id:
                continue
            self._pending_tasks.pop(task_id, None)
            if not future.done():
                future.set_exception(ConnectionError("Page agent disconnected"))

    def _notify_hello(self, client_id: str):
        waiters, self._hello_waiters = self._hello_waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(client_id)

    async def wait_for_agent(self, timeout: float = 10.0) -> str:
        """Wait for the next hello and return the client ID it was given."""
        future = asyncio.get_running_loop().create_future()
        self._hello_waiters.append(future)
        return await asyncio.wait_for(future, timeout)

    async def submit(
        self,
        client_id: str,
        action: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
        timeout: float = 10.0
    ) -> Dict[str, Any]:
        """
        Send a task to an agent and wait for its result frame.

        Args:
            client_id: ID issued to the agent on hello
            action: Structured action, e.g. ``{"type": "click", "selector": "#go"}``
            code: Raw expression, used when no action is given
            timeout: Seconds to wait for the result

        Returns:
            The agent's result frame
        """
        client = self.clients.get(client_id)
        if client is None:
            raise ConnectionError(f"No page agent with client ID {client_id}")

        self._task_counter += 1
        task_id = f"task-{self._task_counter}"
        future = asyncio.get_running_loop().create_future()
        self._pending_tasks[task_id] = (client_id, future)

        try:
            try:
                await client["websocket"].send(encode_frame(task_frame(task_id, action=action, code=code)))
            except ConnectionClosed as e:
                raise ConnectionError(f"Page agent {client_id} disconnected") from e
            return await asyncio.wait_for(future, timeout)
        finally:
            self._pending_tasks.pop(task_id, None)


TITLE_ACTION = {"type": "get", "selector": "title"}


async def greet_agent(operator: OperatorServer, client_id: str) -> Optional[Dict[str, Any]]:
    """Ask a freshly connected agent for its page title and log the answer."""
    try:
        result = await operator.submit(client_id, action=TITLE_ACTION)
    except asyncio.TimeoutError:
        logger.warning(f"Page agent {client_id} did not answer in time")
        return None
    except ConnectionError as e:
        logger.warning(f"Page agent {client_id} went away: {e}")
        return None

    logger.info(f"Title from {client_id}: {json.dumps(result)}")
    return result


def main():
    """Run a standalone operator that greets every agent that connects."""
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Standalone page bridge operator")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=9333)
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s %(levelname)s: %(message)s",
        level=logging.DEBUG,
        stream=sys.stdout
    )

    async def run():
        operator = OperatorServer(args.host, args.port)
        await operator.serve()
        greetings = set()
        while True:
            client_id = await operator.wait_for_agent(timeout=None)
            # Greet in the background so the next hello is not missed
            task = asyncio.ensure_future(greet_agent(operator, client_id))
            greetings.add(task)
            task.add_done_callback(greetings.discard)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("Operator stopped.")


if __name__ == "__main__":
    main()
