from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable, Mapping, Optional, Union

import httpx

from .config import ClientConfig, Transport
from .entry import LogLevel, normalize
from .transport import HttpTransport, WebSocketTransport

_logger = logging.getLogger(__name__)

Sender = Union[HttpTransport, WebSocketTransport]


class TeraTraceClient:
  """
  Sends log entries to a TeraTrace collector.

  Each client picks one transport at construction time: ``http`` posts every
  entry to the ingestion endpoint, ``ws`` streams entries over a persistent
  WebSocket. With ``ws`` the connection attempt starts right away when an
  event loop is running, otherwise on the first send.

  Usage:
    async with TeraTraceClient(service="billing", transport="ws") as tracer:
      await tracer.info("Payment processed", trace_id="req-1", metadata={"amount": 99})
  """

  def __init__(
    self,
    config: Optional[ClientConfig] = None,
    *,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    session_factory: Optional[Callable[[], Any]] = None,
    **options: Any,
  ) -> None:
    if config is None:
      config = ClientConfig(**options)
    elif options:
      config = dataclasses.replace(config, **options)
    self.config = config

    self.sender: Sender
    if config.transport == Transport.WS.value:
      self.sender = WebSocketTransport(
        config.ws_url,
        auto_reconnect=config.auto_reconnect,
        reconnect_delay=config.reconnect_delay,
        queue_maxsize=config.queue_maxsize,
        queue_overflow=config.queue_overflow,
        session_factory=session_factory,
      )
      self._connect_if_loop_running(self.sender)
    else:
      self.sender = HttpTransport(
        config.http_url,
        timeout=config.http_timeout,
        http_transport=http_transport,
      )

  @classmethod
  def from_env(cls, **params: Any) -> "TeraTraceClient":
    """Build a client from explicit parameters, environment variables and the config file."""
    extra = {key: params.pop(key) for key in ("http_transport", "session_factory") if key in params}
    return cls(ClientConfig.from_params_or_env(**params), **extra)

  @staticmethod
  def _connect_if_loop_running(sender: WebSocketTransport) -> None:
    try:
      asyncio.get_running_loop()
    except RuntimeError:
      _logger.debug("No running event loop, TeraTrace WebSocket will connect on first send")
      return
    sender.connect()

  async def log(self, record: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
    """
    Normalize a partial record and deliver it with the configured transport.

    Accepts a mapping, keyword fields, or both (keywords win). Recognized keys
    are ``level``, ``message``, ``service``, ``timestamp``, ``traceId`` /
    ``trace_id``, ``sessionId`` / ``session_id`` and ``metadata``.
    """
    if not self.config.enabled:
      return

    partial = dict(record or {})
    partial.update(fields)
    entry = normalize(partial, self.config.service)
    await self.sender.send(entry)

  async def info(self, message: Any = None, **options: Any) -> None:
    await self.log({"level": LogLevel.INFO.value, "message": message, **options})

  async def warn(self, message: Any = None, **options: Any) -> None:
    await self.log({"level": LogLevel.WARN.value, "message": message, **options})

  async def error(self, message: Any = None, **options: Any) -> None:
    await self.log({"level": LogLevel.ERROR.value, "message": message, **options})

  async def debug(self, message: Any = None, **options: Any) -> None:
    await self.log({"level": LogLevel.DEBUG.value, "message": message, **options})

  async def close(self) -> None:
    """Close the transport; a WebSocket client stops reconnecting for good."""
    await self.sender.close()

  async def __aenter__(self) -> "TeraTraceClient":
    if isinstance(self.sender, WebSocketTransport):
      self.sender.connect()
    return self

  async def __aexit__(self, *exc_info: Any) -> None:
    await self.close()
