"""
Periodic removal of expired secrets.
"""

import asyncio
from typing import Optional
from loguru import logger
from ephemeral_secrets.secret.service import SecretService


class Sweeper:
    """
    Runs `expire_sweep` once at start and then every `interval` seconds,
    until stopped.  A failed pass is logged and the next one still runs.
    """

    def __init__(self, service: SecretService, interval: float):
        self.service = service
        self.interval = interval
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="expired-secret-sweeper")
        logger.info(f"Started expired secret sweeper, {self.interval=}s")

    async def stop(self):
        if self._task is None:
            return
        self._stop.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped expired secret sweeper")

    async def tick(self) -> int:
        """
        One sweep pass.
        """
        try:
            return await self.service.expire_sweep()
        except Exception as exc:
            logger.error(f"Error removing expired secrets: {exc}")
            return 0

    async def _run(self):
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
