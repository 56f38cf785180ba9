import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")


async def gather(*coros_or_futures, batch_size=None):
  """
  Like asyncio.gather but with optional batch_size to limit concurrency.

  Args:
    *coros_or_futures: Coroutines or futures to execute
    batch_size: Optional maximum number of concurrent tasks. If None, all tasks run concurrently.

  Returns:
    List of results in the same order as the input coroutines/futures.
  """
  if not batch_size:
    return await asyncio.gather(*coros_or_futures)

  sem = asyncio.Semaphore(batch_size)

  async def batch_task(f):
    async with sem:
      return await f

  return await asyncio.gather(*[batch_task(f) for f in coros_or_futures])


async def gather_in_windows(
  factories: Iterable[Callable[[], Awaitable[T]]],
  window_size: int,
  on_window_done: Optional[Callable[[int], Awaitable[None] | None]] = None,
) -> List[T]:
  """
  Run `factories` in fixed windows: start up to `window_size` of them, wait for
  the whole window to drain, then advance to the next one.

  Coroutines are created lazily from the factories so nothing beyond the
  current window is started. Results keep input order. `on_window_done` is
  called with the number of finished items after each window.
  """
  if window_size < 1:
    raise ValueError(f"window_size must be at least 1, got {window_size}")

  factories = list(factories)
  results: List[T] = []
  for start in range(0, len(factories), window_size):
    window = factories[start : start + window_size]
    results.extend(await asyncio.gather(*[factory() for factory in window]))
    if on_window_done is not None:
      r = on_window_done(len(results))
      if asyncio.iscoroutine(r):
        await r
  return results
