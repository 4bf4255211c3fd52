import asyncio
from typing import Dict, Set


class ProbeTimers:
    """
    Periodic tick sources for the categories of work a probe runs.

    Each category has its own sleeper task posting its name to a shared
    queue. A category whose previous tick has not been consumed yet is not
    queued again, so a slow handler delays ticks without piling them up.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._pending: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def categories(self):
        return list(self._tasks)

    def start(self, name: str, period: float):
        if existing := self._tasks.get(name):
            existing.cancel()

        self._tasks[name] = asyncio.create_task(
            self._tick(name, period),
            name=f"timer-{name}",
        )

    async def next_tick(self) -> str:
        name = await self._queue.get()
        self._pending.discard(name)
        return name

    async def stop(self):
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        self._pending.clear()

        while not self._queue.empty():
            self._queue.get_nowait()

    async def _tick(self, name: str, period: float):
        while True:
            await asyncio.sleep(period)

            if name not in self._pending:
                self._pending.add(name)
                self._queue.put_nowait(name)
