"""
Operator wire protocol

JSON text frames exchanged between the page agent and the operator endpoint:

    agent -> operator   {"type": "hello", "url": ...}
    operator -> agent   {"type": "welcome", "clientId": ...}
    operator -> agent   {"type": "task", "taskId": ..., "action": {...}} | {..., "code": ...}
    agent -> operator   {"type": "result", "taskId": ..., "result": ..., "error": ...}
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

HELLO = "hello"
WELCOME = "welcome"
TASK = "task"
RESULT = "result"

INBOUND_TYPES = (WELCOME, TASK)
OPERATOR_TYPES = (HELLO, RESULT)


class ProtocolError(ValueError):
    """Raised for frames the agent cannot interpret."""


@dataclass
class Task:
    task_id: Any
    action: Any = None
    code: Optional[str] = None

    @classmethod
    def from_frame(cls, frame: Dict[str, Any]) -> "Task":
        return cls(
            task_id=frame.get("taskId"),
            action=frame.get("action"),
            code=frame.get("code"),
        )


@dataclass
class Result:
    task_id: Any
    value: Any = None
    error: Optional[str] = None

    def to_frame(self) -> Dict[str, Any]:
        # Unset fields are left out, the way JSON drops undefined
        frame = {"type": RESULT, "taskId": self.task_id}
        if self.value is not None:
            frame["result"] = self.value
        if self.error is not None:
            frame["error"] = self.error
        return frame


def decode_frame(
    message: Union[str, bytes],
    accepted: Tuple[str, ...] = INBOUND_TYPES
) -> Dict[str, Any]:
    """
    Parse one inbound frame.

    Raises:
        ProtocolError: invalid UTF-8 or JSON, a non-object payload, or an unknown type
    """
    if isinstance(message, (bytes, bytearray)):
        try:
            message = bytes(message).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not valid UTF-8: {e}") from e

    try:
        data = json.loads(message)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON frame: {message!r}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"Frame is not an object: {message!r}")

    frame_type = data.get("type")
    if frame_type not in accepted:
        raise ProtocolError(f"Unknown frame type: {frame_type!r}")

    return data


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, default=str)


def hello_frame(url: str) -> Dict[str, Any]:
    return {"type": HELLO, "url": url}


def welcome_frame(client_id: str) -> Dict[str, Any]:
    return {"type": WELCOME, "clientId": client_id}


def task_frame(
    task_id: str,
    action: Optional[Dict[str, Any]] = None,
    code: Optional[str] = None
) -> Dict[str, Any]:
    frame = {"type": TASK, "taskId": task_id}
    if action is not None:
        frame["action"] = action
    if code is not None:
        frame["code"] = code
    return frame
