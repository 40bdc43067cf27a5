"""
Utility/helper functions.
"""

import time
import uuid
import base64
import asyncio
from typing import Awaitable, Callable, Optional, Set
from loguru import logger

# Same alphabet the chat host uses for its own ids, so secret ids look native.
ID_ALPHABET = "ybndrfg8ejkmcpqxot1uwisza345h769"
_ID_TRANSLATION = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567", ID_ALPHABET)

Clock = Callable[[], int]


def now_millis() -> int:
    """
    Current wall-clock time in integer milliseconds since the epoch.
    """
    return time.time_ns() // 1_000_000


def new_id() -> str:
    """
    Generate an opaque 26 character identifier from a random uuid.
    """
    encoded = base64.b32encode(uuid.uuid4().bytes).decode().rstrip("=")
    return encoded.translate(_ID_TRANSLATION)


class TaskTracker:
    """
    Registry of fire-and-forget tasks, so none of them outlive the plugin.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    def __len__(self):
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> Optional[asyncio.Task]:
        if self._closed:
            logger.warning(f"Refusing to start background task after shutdown: {name=}")
            coro.close()
            return None
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def adopt(self, task: asyncio.Task) -> asyncio.Task:
        """
        Take over an already running task (e.g. one a request stopped waiting on).
        """
        if not task.done():
            self._tasks.add(task)
            task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}")

    async def join(self):
        """
        Wait for everything currently scheduled (used by tests and graceful drains).
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        self._closed = True
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} background task(s)")


async def delayed(delay: float, func: Callable[[], Awaitable]):
    """
    Sleep, then run the coroutine function.
    """
    if delay > 0:
        await asyncio.sleep(delay)
    return await func()
