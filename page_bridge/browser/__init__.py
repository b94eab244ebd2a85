"""
Page Bridge Browser Module

Drives a web page for a remote operator over a WebSocket bridge.
"""

from .bridge import ConnectionState, PageBridge
from .driver import PageDriver
from .operator import OperatorServer

__all__ = ["ConnectionState", "OperatorServer", "PageBridge", "PageDriver"]
