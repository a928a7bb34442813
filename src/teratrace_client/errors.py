"""
Exceptions raised by the teratrace client transports.

Every delivery failure is reported through the outcome of the awaited call
that issued it; nothing is raised asynchronously outside of an awaited call.
"""

from __future__ import annotations

from typing import Optional


class TeraTraceError(Exception):
  """Base class for all client errors."""


class TransportError(TeraTraceError):
  """
  Delivery of a single entry failed.

  Attributes:
    status_code: HTTP status of the collector response, when one was received.
  """

  def __init__(self, message: str, status_code: Optional[int] = None) -> None:
    self.status_code = status_code
    super().__init__(message)


class SocketWriteError(TransportError):
  """Writing an entry to an open WebSocket failed."""


class SocketConnectError(TransportError):
  """The WebSocket connection could not be established."""


class TransportClosedError(TransportError):
  """The transport was closed before the entry could be delivered."""


class QueueOverflowError(TransportError):
  """The bounded pending queue was full and the entry was not kept."""
