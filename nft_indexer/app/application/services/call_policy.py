from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_ATTEMPTS = 3


@dataclass(frozen=True)
class CallPolicy:
    """
    Bounded time + bounded attempts for a single external call.

    Every on-chain read and every metadata fetch goes through `run`:
    - each attempt is cancelled after `timeout` seconds,
    - any exception (timeouts included) triggers another attempt,
    - the last exception is re-raised once `attempts` are exhausted.
    """

    timeout: float = _DEFAULT_TIMEOUT_SECONDS
    attempts: int = _DEFAULT_ATTEMPTS
    backoff: float = 0.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.backoff < 0:
            raise ValueError("backoff must be >= 0")

    async def run(self, call: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        for attempt in range(1, self.attempts):
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug(
                    "%s failed (attempt %s/%s): %r",
                    label,
                    attempt,
                    self.attempts,
                    exc,
                )
                if self.backoff > 0:
                    await asyncio.sleep(self.backoff * (2 ** (attempt - 1)))

        # Last attempt: its failure propagates to the caller.
        return await asyncio.wait_for(call(), timeout=self.timeout)
