"""Unit tests for the in-flight computation registry."""

import asyncio

import pytest

from rewind_stats.util.inflight import InFlight


@pytest.mark.asyncio
class TestInFlight:
  """Sharing one computation between concurrent callers."""

  async def test_concurrent_callers_share_one_run(self):
    """Test the factory runs once for simultaneous requests."""
    calls = 0

    async def compute():
      nonlocal calls
      calls += 1
      await asyncio.sleep(0.01)
      return "v"

    inflight = InFlight()
    results = await asyncio.gather(*[inflight.run("k", compute) for _ in range(5)])

    assert results == ["v"] * 5
    assert calls == 1
    assert len(inflight) == 0

  async def test_sequential_callers_run_again(self):
    """Test a finished computation is not reused."""
    calls = 0

    async def compute():
      nonlocal calls
      calls += 1
      return calls

    inflight = InFlight()
    assert await inflight.run("k", compute) == 1
    assert await inflight.run("k", compute) == 2

  async def test_different_keys_run_separately(self):
    """Test keys do not share results."""
    inflight = InFlight()

    async def value(v):
      await asyncio.sleep(0)
      return v

    a, b = await asyncio.gather(inflight.run("a", lambda: value(1)), inflight.run("b", lambda: value(2)))
    assert (a, b) == (1, 2)

  async def test_error_reaches_every_waiter(self):
    """Test a failure is raised to all callers and then cleared."""
    async def boom():
      await asyncio.sleep(0.01)
      raise RuntimeError("upstream")

    inflight = InFlight()
    results = await asyncio.gather(*[inflight.run("k", boom) for _ in range(3)], return_exceptions=True)

    assert all(isinstance(r, RuntimeError) for r in results)
    assert "k" not in inflight

  async def test_cancelled_waiter_does_not_cancel_work(self):
    """Test cancelling one caller leaves the computation running for the rest."""
    release = asyncio.Event()
    finished = []

    async def compute():
      await release.wait()
      finished.append(True)
      return "done"

    inflight = InFlight()
    first = asyncio.create_task(inflight.run("k", compute))
    second = asyncio.create_task(inflight.run("k", compute))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
      await first

    release.set()
    assert await second == "done"
    assert finished == [True]

  async def test_work_completes_after_every_waiter_leaves(self):
    """Test the computation still finishes with no one waiting."""
    release = asyncio.Event()
    finished = asyncio.Event()

    async def compute():
      await release.wait()
      finished.set()

    inflight = InFlight()
    waiter = asyncio.create_task(inflight.run("k", compute))
    await asyncio.sleep(0)
    waiter.cancel()
    release.set()

    await asyncio.wait_for(finished.wait(), timeout=1)

  async def test_forget_detaches_running_task(self):
    """Test forgotten keys start a fresh computation on the next call."""
    release = asyncio.Event()
    calls = 0

    async def compute():
      nonlocal calls
      calls += 1
      n = calls
      await release.wait()
      return n

    inflight = InFlight()
    old = asyncio.create_task(inflight.run("k", compute))
    await asyncio.sleep(0)

    assert inflight.forget(["k", "other"]) == 1
    new = asyncio.create_task(inflight.run("k", compute))
    await asyncio.sleep(0)
    release.set()

    assert await old == 1
    assert await new == 2
    assert len(inflight) == 0
