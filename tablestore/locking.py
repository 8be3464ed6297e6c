"""Reader/writer lock for asyncio tasks."""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque, Tuple


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer.

    Waiters are served in arrival order: once a writer is queued, readers
    that arrive after it wait behind it, so a steady stream of readers
    cannot starve a writer. Beyond that there is no fairness guarantee.

    The lock is neither re-entrant nor upgradable. A task that holds
    reader() and then asks for writer() waits for itself forever; release
    the read side first.

    Cancelling a task while it waits only withdraws that task's request.
    A task already holding the lock is never interrupted by other waiters.

    Example:
        lock = ReadWriteLock()

        async with lock.reader():
            ...  # shared with other readers

        async with lock.writer():
            ...  # exclusive
    """

    def __init__(self):
        self._readers = 0
        self._writing = False
        self._waiters: Deque[Tuple[bool, asyncio.Future]] = deque()

    @property
    def readers(self) -> int:
        """Number of tasks currently holding the read side."""
        return self._readers

    @property
    def writing(self) -> bool:
        """Whether a task currently holds the write side."""
        return self._writing

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[None]:
        """Hold the lock in shared mode for the body of the block."""
        await self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @asynccontextmanager
    async def writer(self) -> AsyncIterator[None]:
        """Hold the lock in exclusive mode for the body of the block."""
        await self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    async def acquire_read(self) -> None:
        await self._acquire(writer=False)

    async def acquire_write(self) -> None:
        await self._acquire(writer=True)

    def release_read(self) -> None:
        if self._readers <= 0:
            raise RuntimeError("release_read() called without a read hold")
        self._readers -= 1
        self._wake()

    def release_write(self) -> None:
        if not self._writing:
            raise RuntimeError("release_write() called without a write hold")
        self._writing = False
        self._wake()

    async def _acquire(self, writer: bool) -> None:
        if not self._waiters and self._can_grant(writer):
            self._grant(writer)
            return

        fut = asyncio.get_running_loop().create_future()
        entry = (writer, fut)
        self._waiters.append(entry)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # granted just before the cancellation landed; give it back
                if writer:
                    self.release_write()
                else:
                    self.release_read()
            else:
                if entry in self._waiters:
                    self._waiters.remove(entry)
                self._wake()
            raise

    def _can_grant(self, writer: bool) -> bool:
        if writer:
            return not self._writing and self._readers == 0
        return not self._writing

    def _grant(self, writer: bool) -> None:
        if writer:
            self._writing = True
        else:
            self._readers += 1

    def _wake(self) -> None:
        while self._waiters:
            writer, fut = self._waiters[0]
            if fut.done():
                self._waiters.popleft()
                continue
            if not self._can_grant(writer):
                return
            self._waiters.popleft()
            self._grant(writer)
            fut.set_result(None)
            if writer:
                return

    def __repr__(self) -> str:
        return (
            f"<ReadWriteLock readers={self._readers} writing={self._writing} "
            f"waiting={len(self._waiters)}>"
        )
