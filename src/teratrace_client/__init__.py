"""
teratrace_client

Asyncio client that forwards log entries to a TeraTrace collector over HTTP
or a persistent WebSocket, buffering and reconnecting when the socket drops.
"""

from .client import TeraTraceClient
from .config import ClientConfig
from .entry import LogEntry, LogLevel, normalize
from .errors import (
  QueueOverflowError,
  SocketConnectError,
  SocketWriteError,
  TeraTraceError,
  TransportClosedError,
  TransportError,
)
from .logging_setup import setup_logging
from .transport import ConnectionState

__all__ = [
  "ClientConfig",
  "ConnectionState",
  "LogEntry",
  "LogLevel",
  "QueueOverflowError",
  "SocketConnectError",
  "SocketWriteError",
  "TeraTraceClient",
  "TeraTraceError",
  "TransportClosedError",
  "TransportError",
  "normalize",
  "setup_logging",
]
