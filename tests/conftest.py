import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import httpx
import pytest


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
  """Yield to the event loop until ``predicate`` holds."""
  loop = asyncio.get_running_loop()
  deadline = loop.time() + timeout
  while not predicate():
    if loop.time() > deadline:
      raise AssertionError("condition not reached within timeout")
    await asyncio.sleep(0.001)


class FakeWebSocket:
  """Stands in for ``aiohttp.ClientWebSocketResponse``."""

  def __init__(self, incoming: Optional[List[Any]] = None) -> None:
    self.sent: List[Dict[str, Any]] = []
    self.fail_on: set = set()
    self.closed = False
    self._incoming = list(incoming or [])
    self._gone = asyncio.Event()

  async def send_str(self, data: str) -> None:
    await asyncio.sleep(0)
    payload = json.loads(data)
    if self.closed or payload.get("message") in self.fail_on:
      raise ConnectionResetError("Cannot write to closing transport")
    self.sent.append(payload)

  async def close(self) -> None:
    self.closed = True
    self._gone.set()

  def drop(self) -> None:
    """Simulate the collector closing the connection."""
    self._gone.set()

  def exception(self) -> Optional[BaseException]:
    return None

  def __aiter__(self) -> "FakeWebSocket":
    return self

  async def __anext__(self) -> Any:
    if self._incoming:
      return self._incoming.pop(0)
    await self._gone.wait()
    raise StopAsyncIteration

  @property
  def messages(self) -> List[Any]:
    return [payload["message"] for payload in self.sent]


class FakeSession:
  """
  Stands in for ``aiohttp.ClientSession``.

  ``gate`` holds every ``ws_connect`` until it is set, which lets a test
  observe the CONNECTING state. ``failures`` makes that many upcoming
  attempts fail. ``fail_on`` lists messages whose writes fail on every socket.
  """

  def __init__(self) -> None:
    self.attempts = 0
    self.urls: List[str] = []
    self.sockets: List[FakeWebSocket] = []
    self.gate: Optional[asyncio.Event] = None
    self.failures = 0
    self.incoming: List[Any] = []
    self.fail_on: set = set()
    self.closed = False

  async def ws_connect(self, url: str) -> FakeWebSocket:
    self.attempts += 1
    self.urls.append(url)
    if self.gate is not None:
      await self.gate.wait()
    if self.failures:
      self.failures -= 1
      raise aiohttp.ClientConnectionError("Connection refused")
    ws = FakeWebSocket(incoming=self.incoming)
    ws.fail_on = self.fail_on
    self.sockets.append(ws)
    return ws

  async def close(self) -> None:
    self.closed = True

  @property
  def ws(self) -> FakeWebSocket:
    return self.sockets[-1]


@pytest.fixture
def fake_session() -> FakeSession:
  return FakeSession()


class RecordingCollector:
  """httpx handler that records requests and answers with ``status_code``."""

  def __init__(self, status_code: int = 200) -> None:
    self.status_code = status_code
    self.requests: List[httpx.Request] = []

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    return httpx.Response(self.status_code, json={"status": "ok"})

  @property
  def payloads(self) -> List[Dict[str, Any]]:
    return [json.loads(request.content) for request in self.requests]

  def transport(self) -> httpx.MockTransport:
    return httpx.MockTransport(self)


@pytest.fixture
def collector() -> RecordingCollector:
  return RecordingCollector()
