import asyncio


class CancellationSignal:
    """One-shot stop request. Sending it more than once has no effect."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def send(self) -> bool:
        if self._event.is_set():
            return False

        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        await self._event.wait()
