import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable


class InFlight:
  """
  key -> running task. Concurrent callers for the same key share one
  computation. A waiter that gets cancelled does not cancel the task, so
  the result still lands for everybody else (and in the cache).
  """

  def __init__(self):
    self._tasks: Dict[str, asyncio.Task] = {}

  def __contains__(self, key: str) -> bool:
    return key in self._tasks

  def __len__(self) -> int:
    return len(self._tasks)

  async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
    task = self._tasks.get(key)
    if task is None:
      task = asyncio.ensure_future(factory())
      self._tasks[key] = task
      task.add_done_callback(lambda t, k=key: self._done(k, t))
    return await asyncio.shield(task)

  def forget(self, keys: Iterable[str]) -> int:
    """Detach running tasks for these keys; they finish but are no longer shared."""
    n = 0
    for k in keys:
      if self._tasks.pop(k, None) is not None:
        n += 1
    return n

  def _done(self, key: str, task: asyncio.Task) -> None:
    if self._tasks.get(key) is task:
      self._tasks.pop(key, None)
    # mark the exception retrieved even when every waiter went away
    if not task.cancelled():
      task.exception()
