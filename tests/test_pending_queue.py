import asyncio

import pytest

from teratrace_client.entry import normalize  # type: ignore[import]
from teratrace_client.errors import QueueOverflowError, TransportClosedError  # type: ignore[import]
from teratrace_client.queue import PendingQueue, PendingSend  # type: ignore[import]


def _pending(message: str) -> PendingSend:
  future = asyncio.get_running_loop().create_future()
  return PendingSend(entry=normalize({"message": message}, "svc"), future=future)


@pytest.mark.asyncio
async def test_unbounded_queue_keeps_fifo_order():
  queue = PendingQueue()
  for i in range(100):
    queue.enqueue(_pending(f"m{i}"))

  assert len(queue) == 100
  assert [queue.popleft().entry.message for _ in range(3)] == ["m0", "m1", "m2"]


@pytest.mark.asyncio
async def test_drop_oldest_rejects_evicted_send():
  queue = PendingQueue(maxsize=2, overflow="drop_oldest")
  first, second, third = _pending("a"), _pending("b"), _pending("c")

  queue.enqueue(first)
  queue.enqueue(second)
  queue.enqueue(third)

  assert [item.entry.message for item in queue] == ["b", "c"]
  with pytest.raises(QueueOverflowError):
    await first.future


@pytest.mark.asyncio
async def test_reject_new_keeps_existing_sends():
  queue = PendingQueue(maxsize=2, overflow="reject_new")
  first, second, third = _pending("a"), _pending("b"), _pending("c")

  queue.enqueue(first)
  queue.enqueue(second)
  queue.enqueue(third)

  assert [item.entry.message for item in queue] == ["a", "b"]
  with pytest.raises(QueueOverflowError):
    await third.future
  assert not first.future.done()


@pytest.mark.asyncio
async def test_reject_all_empties_queue():
  queue = PendingQueue()
  items = [_pending("a"), _pending("b")]
  for item in items:
    queue.enqueue(item)

  assert queue.reject_all(lambda: TransportClosedError("closed")) == 2
  assert not queue
  for item in items:
    with pytest.raises(TransportClosedError):
      await item.future


@pytest.mark.asyncio
async def test_resolve_ignores_cancelled_future():
  item = _pending("a")
  item.future.cancel()
  item.resolve()
  item.reject(RuntimeError("late"))
  assert item.future.cancelled()
