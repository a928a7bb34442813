from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import traceback
from logging import Handler, LogRecord
from typing import Any, Dict, Optional, Set, Union

from .client import TeraTraceClient
from .config import ClientConfig

_LEVELS = {
  "WARNING": "WARN",
  "CRITICAL": "ERROR",
  "FATAL": "ERROR",
}

# Loggers written to while delivering a record; forwarding them would loop.
_IGNORED_LOGGERS = ("teratrace_client", "httpx", "httpcore", "aiohttp")


def _is_ignored(name: str) -> bool:
  return any(name == prefix or name.startswith(prefix + ".") for prefix in _IGNORED_LOGGERS)


class TeraTraceHandler(Handler):
  """
  Logging handler that forwards records to a TeraTrace collector.

  ``emit`` never blocks: delivery is scheduled on the client's event loop,
  either directly when called from the loop thread or thread-safely from any
  other thread. Records from the client's own loggers and from the HTTP and
  WebSocket libraries it uses are ignored, so that delivery cannot feed
  back into itself.
  """

  def __init__(self, client: TeraTraceClient, loop: asyncio.AbstractEventLoop) -> None:
    super().__init__()
    self.client = client
    self.loop = loop
    self._tasks: Set["asyncio.Task[None]"] = set()

  def emit(self, record: LogRecord) -> None:
    if _is_ignored(record.name):
      return
    try:
      partial = self._to_partial(record)
      try:
        running = asyncio.get_running_loop()
      except RuntimeError:
        running = None

      future: Union["asyncio.Future[None]", "concurrent.futures.Future[None]"]
      if running is self.loop:
        task = self.loop.create_task(self.client.log(partial))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        future = task
      else:
        future = asyncio.run_coroutine_threadsafe(self.client.log(partial), self.loop)
      future.add_done_callback(lambda done: self._report(done, record))
    except Exception:
      # Never break application logging.
      self.handleError(record)

  def _to_partial(self, record: LogRecord) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"logger": record.name}

    if record.exc_info:
      _type, _value, _tb = record.exc_info
      if _type is not None:
        metadata["exception_type"] = _type.__name__
      if _tb is not None:
        metadata["stacktrace"] = "".join(traceback.format_exception(_type, _value, _tb))

    if getattr(record, "pathname", None):
      metadata["file_path"] = record.pathname
    if getattr(record, "lineno", None) is not None:
      metadata["line_no"] = record.lineno

    partial: Dict[str, Any] = {
      "level": _LEVELS.get(record.levelname, record.levelname),
      "message": record.getMessage(),
      "metadata": metadata,
    }
    for key in ("trace_id", "session_id"):
      value = getattr(record, key, None)
      if value:
        partial[key] = value
    return partial

  def _report(self, done: Any, record: LogRecord) -> None:
    if done.cancelled():
      return
    try:
      done.result()
    except Exception:
      self.handleError(record)


def setup_logging(
  logger: Optional[logging.Logger] = None,
  *,
  client: Optional[TeraTraceClient] = None,
  loop: Optional[asyncio.AbstractEventLoop] = None,
  **config: Any,
) -> Optional[TeraTraceHandler]:
  """
  Attach a TeraTrace handler to the standard logging module.

  This does not replace existing handlers; it adds one that ships records
  through ``client`` (built from ``config``, the environment and the config
  file when not given). Must be called with a running event loop or with an
  explicit ``loop``. Pass ``trace_id``/``session_id`` through ``extra=``.

  Returns the attached handler, or ``None`` when delivery is disabled.
  """
  if client is None:
    client = TeraTraceClient(ClientConfig.from_params_or_env(**config))
  if not client.config.enabled:
    # Delivery is disabled; preserve existing logging behavior only.
    return None

  target_logger = logger or logging.getLogger()

  # Avoid attaching duplicate client handlers to the same logger.
  for existing in target_logger.handlers:
    if isinstance(existing, TeraTraceHandler):
      return existing

  handler = TeraTraceHandler(client=client, loop=loop or asyncio.get_running_loop())
  target_logger.addHandler(handler)
  return handler
