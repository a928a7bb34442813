from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

import aiohttp

from ..config import OverflowPolicy
from ..entry import LogEntry
from ..errors import SocketConnectError, SocketWriteError, TransportClosedError
from ..queue import PendingQueue, PendingSend

_logger = logging.getLogger("teratrace_client.transport")


class ConnectionState(str, Enum):
  DISCONNECTED = "disconnected"
  CONNECTING = "connecting"
  CONNECTED = "connected"


class WebSocketTransport:
  """
  Streams entries to the collector over a persistent WebSocket.

  State machine:
    DISCONNECTED -> CONNECTING   on send() or when the reconnect timer fires
    CONNECTING   -> CONNECTED    when the socket opens; the pending queue drains
    CONNECTING   -> DISCONNECTED when the attempt fails
    CONNECTED    -> DISCONNECTED on any close or error

  Sends issued while not connected wait in a FIFO ``PendingQueue`` and are
  delivered in order once the socket opens. A failed attempt never rejects
  queued sends. With ``auto_reconnect`` a single reconnect is armed per
  disconnect, ``reconnect_delay`` seconds later. The timer is a handle owned
  by this instance and ``close()`` cancels it.

  All methods must be called from the event loop that owns the transport.
  """

  def __init__(
    self,
    url: str,
    auto_reconnect: bool = True,
    reconnect_delay: float = 5.0,
    queue_maxsize: Optional[int] = None,
    queue_overflow: str = OverflowPolicy.DROP_OLDEST.value,
    session_factory: Optional[Callable[[], Any]] = None,
  ) -> None:
    self.url = url
    self.auto_reconnect = auto_reconnect
    self.reconnect_delay = reconnect_delay
    self.last_error: Optional[SocketConnectError] = None

    self._session_factory = session_factory or aiohttp.ClientSession
    self._session: Any = None
    self._ws: Any = None
    self._state = ConnectionState.DISCONNECTED
    self._pending = PendingQueue(maxsize=queue_maxsize, overflow=queue_overflow)
    self._connect_task: Optional["asyncio.Task[None]"] = None
    self._reader_task: Optional["asyncio.Task[None]"] = None
    self._reconnect_handle: Optional[asyncio.TimerHandle] = None
    self._draining = False
    self._closed = False

  @property
  def state(self) -> ConnectionState:
    return self._state

  @property
  def pending(self) -> int:
    return len(self._pending)

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def reconnect_scheduled(self) -> bool:
    return self._reconnect_handle is not None

  def connect(self) -> Optional["asyncio.Task[None]"]:
    """
    Start a connection attempt unless one is already outstanding.

    Returns the task driving the attempt, or ``None`` once closed.
    """
    if self._closed:
      return None
    if self._state is not ConnectionState.DISCONNECTED:
      return self._connect_task

    self._cancel_reconnect()
    self._set_state(ConnectionState.CONNECTING)
    loop = asyncio.get_running_loop()
    self._connect_task = loop.create_task(self._open())
    return self._connect_task

  async def send(self, entry: LogEntry) -> None:
    if self._closed:
      raise TransportClosedError("TeraTrace WebSocket transport is closed")

    if self._state is ConnectionState.CONNECTED and not self._draining:
      await self._write(self._ws, entry)
      return

    future: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
    self._pending.enqueue(PendingSend(entry=entry, future=future))
    _logger.debug(
      "TeraTrace WebSocket %s, queued entry (%s pending)",
      self._state.value,
      len(self._pending),
    )
    if self._state is ConnectionState.DISCONNECTED:
      self.connect()
    await future

  async def close(self) -> None:
    """
    Shut the transport down for good.

    Cancels the reconnect timer and any attempt in flight, closes the socket
    and session, and rejects sends still waiting in the queue.
    """
    if self._closed:
      return
    self._closed = True
    self._cancel_reconnect()

    tasks = [
      task for task in (self._connect_task, self._reader_task)
      if task is not None and not task.done()
    ]
    for task in tasks:
      task.cancel()

    ws, self._ws = self._ws, None
    if ws is not None:
      await ws.close()
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)
    self._set_state(ConnectionState.DISCONNECTED)

    rejected = self._pending.reject_all(
      lambda: TransportClosedError("TeraTrace WebSocket transport closed before delivery")
    )
    if rejected:
      _logger.warning("TeraTrace WebSocket closed with %s undelivered entries", rejected)

    if self._session is not None:
      await self._session.close()
      self._session = None
    _logger.debug("TeraTrace WebSocket transport closed")

  async def _open(self) -> None:
    try:
      ws = await self._establish()
    except SocketConnectError as exc:
      self.last_error = exc
      _logger.warning("TeraTrace WebSocket error: %s", exc)
      self._handle_disconnect()
      return

    self._ws = ws
    self.last_error = None
    self._set_state(ConnectionState.CONNECTED)
    _logger.info("Connected to TeraTrace WebSocket at %s", self.url)

    self._reader_task = asyncio.get_running_loop().create_task(self._read(ws))
    await self._drain(ws)

  async def _establish(self) -> Any:
    if self._session is None:
      self._session = self._session_factory()
    try:
      return await self._session.ws_connect(self.url)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
      raise SocketConnectError(f"Could not connect to {self.url}: {exc}") from exc

  async def _drain(self, ws: Any) -> None:
    # New sends queue behind the backlog until it is empty.
    self._draining = True
    try:
      while self._pending and self._ws is ws:
        item = self._pending.popleft()
        if item.future.done():
          continue
        try:
          await self._write(ws, item.entry)
        except SocketWriteError as exc:
          item.reject(exc)
        except asyncio.CancelledError:
          item.reject(TransportClosedError("TeraTrace WebSocket transport closed before delivery"))
          raise
        else:
          item.resolve()
    finally:
      self._draining = False

  async def _write(self, ws: Any, entry: LogEntry) -> None:
    try:
      await ws.send_str(entry.to_json())
    except (aiohttp.ClientError, OSError, RuntimeError) as exc:
      _logger.warning("TeraTrace WebSocket send failed: %s", exc)
      raise SocketWriteError(f"Could not write entry to {self.url}: {exc}") from exc

  async def _read(self, ws: Any) -> None:
    try:
      async for msg in ws:
        if msg.type == aiohttp.WSMsgType.ERROR:
          _logger.warning("TeraTrace WebSocket error: %s", ws.exception())
        # Server-initiated messages carry no meaning yet.
    except (aiohttp.ClientError, OSError) as exc:
      _logger.warning("TeraTrace WebSocket error: %s", exc)

    if self._ws is ws:
      self._handle_disconnect()

  def _handle_disconnect(self) -> None:
    if self._state is ConnectionState.CONNECTED:
      _logger.info("Disconnected from TeraTrace WebSocket")
    self._ws = None
    self._set_state(ConnectionState.DISCONNECTED)

    if self._closed or not self.auto_reconnect or self._reconnect_handle is not None:
      return
    loop = asyncio.get_running_loop()
    self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)
    _logger.info("Reconnecting to TeraTrace WebSocket in %.1fs", self.reconnect_delay)

  def _reconnect(self) -> None:
    self._reconnect_handle = None
    self.connect()

  def _cancel_reconnect(self) -> None:
    if self._reconnect_handle is not None:
      self._reconnect_handle.cancel()
      self._reconnect_handle = None

  def _set_state(self, state: ConnectionState) -> None:
    if state is not self._state:
      _logger.debug("TeraTrace WebSocket %s -> %s", self._state.value, state.value)
      self._state = state
