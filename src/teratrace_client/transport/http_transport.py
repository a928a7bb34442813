from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..entry import LogEntry
from ..errors import TransportError

_logger = logging.getLogger("teratrace_client.transport")


class HttpTransport:
  """
  One-shot delivery of a single entry to the collector's ingestion endpoint.

  Each ``send`` is exactly one POST with no retry: the request channel has no
  session state, so retry policy belongs to the application. Failures are
  logged at WARNING level and raised to the caller as ``TransportError``.
  """

  def __init__(
    self,
    endpoint: str,
    timeout: float = 5.0,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
  ) -> None:
    self.endpoint = endpoint
    self.timeout = timeout
    self._http_transport = http_transport
    self._client: Optional[httpx.AsyncClient] = None

  def _get_client(self) -> httpx.AsyncClient:
    if self._client is None:
      self._client = httpx.AsyncClient(
        timeout=self.timeout,
        transport=self._http_transport,
      )
    return self._client

  async def send(self, entry: LogEntry) -> None:
    client = self._get_client()
    try:
      response = await client.post(
        self.endpoint,
        content=entry.to_json(),
        headers={"Content-Type": "application/json"},
      )
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      status = exc.response.status_code
      _logger.warning("TeraTrace HTTP send failed: collector returned %s", status)
      raise TransportError(
        f"Collector at {self.endpoint} returned HTTP {status}",
        status_code=status,
      ) from exc
    except httpx.HTTPError as exc:
      _logger.warning("TeraTrace HTTP send failed: %s: %s", type(exc).__name__, exc)
      raise TransportError(f"Could not deliver entry to {self.endpoint}: {exc}") from exc

  async def close(self) -> None:
    if self._client is not None:
      await self._client.aclose()
      self._client = None
