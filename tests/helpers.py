"""Test doubles and builders shared across test modules."""

import asyncio

from cryptotracker.models import AssetRecord


class StepClock:
    """Stand-in for ``asyncio.sleep`` that never waits on wall time.

    Each call records the requested delay and yields once to the event loop.
    After ``free`` calls every further call parks until cancelled, which
    freezes a background loop at a known point.
    """

    def __init__(self, free: int = 1000) -> None:
        self.delays: list[float] = []
        self.parked = 0
        self._free = free

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) > self._free:
            self.parked += 1
            await asyncio.get_running_loop().create_future()
        await asyncio.sleep(0)

    async def wait_parked(self, count: int = 1, spins: int = 500) -> None:
        """Yield until ``count`` sleepers have parked in total."""
        for _ in range(spins):
            if self.parked >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} parked sleepers, saw {self.parked}")


async def spin(times: int = 20) -> None:
    """Let scheduled tasks run."""
    for _ in range(times):
        await asyncio.sleep(0)


def make_record(coin_id: str, price: float = 1.0, **extra) -> AssetRecord:
    """AssetRecord with plausible defaults for the text fields."""
    return AssetRecord(
        id=coin_id,
        name=extra.pop("name", coin_id.capitalize()),
        symbol=extra.pop("symbol", coin_id[:3]),
        image=extra.pop("image", f"https://img.example/{coin_id}.png"),
        current_price=price,
        **extra,
    )
