from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterator, Optional

from .config import OverflowPolicy
from .entry import LogEntry
from .errors import QueueOverflowError

_logger = logging.getLogger(__name__)


@dataclass
class PendingSend:
  """A queued entry together with the future its caller is awaiting."""

  entry: LogEntry
  future: "asyncio.Future[None]"

  def resolve(self) -> None:
    if not self.future.done():
      self.future.set_result(None)

  def reject(self, exc: BaseException) -> None:
    if not self.future.done():
      self.future.set_exception(exc)


class PendingQueue:
  """
  FIFO of sends waiting for the WebSocket to become connected.

  Unbounded by default. With ``maxsize`` set, a full queue applies the
  overflow policy:
  - ``drop_oldest``: the oldest pending send is evicted and its future is
    rejected with ``QueueOverflowError``.
  - ``reject_new``: the new send is rejected with ``QueueOverflowError``.

  Entries are never dropped without their caller being told.
  """

  def __init__(
    self,
    maxsize: Optional[int] = None,
    overflow: str = OverflowPolicy.DROP_OLDEST.value,
  ) -> None:
    self._items: Deque[PendingSend] = deque()
    self._maxsize = maxsize
    self._overflow = OverflowPolicy(overflow)

  def __len__(self) -> int:
    return len(self._items)

  def __bool__(self) -> bool:
    return bool(self._items)

  def __iter__(self) -> Iterator[PendingSend]:
    return iter(self._items)

  @property
  def maxsize(self) -> Optional[int]:
    return self._maxsize

  def enqueue(self, item: PendingSend) -> None:
    if self._maxsize is not None and len(self._items) >= self._maxsize:
      if self._overflow is OverflowPolicy.REJECT_NEW:
        _logger.warning("Pending queue full (%s entries), rejecting new entry", self._maxsize)
        item.reject(QueueOverflowError(f"Pending queue is full ({self._maxsize} entries)"))
        return

      evicted = self._items.popleft()
      _logger.warning("Pending queue full (%s entries), dropping oldest entry", self._maxsize)
      evicted.reject(
        QueueOverflowError(f"Entry evicted from full pending queue ({self._maxsize} entries)")
      )

    self._items.append(item)

  def popleft(self) -> PendingSend:
    return self._items.popleft()

  def reject_all(self, make_error: Callable[[], BaseException]) -> int:
    """Reject every pending send with a fresh error and empty the queue."""
    count = 0
    while self._items:
      self._items.popleft().reject(make_error())
      count += 1
    return count
