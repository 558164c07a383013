"""Cancellation token shared between the HTTP call and the read loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag that coroutines can await."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested: {reason}")

    async def wait(self) -> None:
        await self._event.wait()
