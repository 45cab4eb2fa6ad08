"""CorrelationRegistry — keyed pending continuations for in-flight engine requests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from reencode.domain.errors import DuplicateKeyError, OrphanEventError
from reencode.domain.types import CorrelationKey

logger = logging.getLogger(__name__)


class CorrelationRegistry:
    """Map a ``runId:phase`` key to the future its caller is awaiting.

    At most one registration per key. ``settle`` removes the entry before
    delivering, so a key is settled exactly once no matter how many
    completions arrive for it; late or duplicate completions are orphans.
    Arrival order is irrelevant, only the key matters.
    """

    def __init__(self) -> None:
        self._pending: dict[CorrelationKey, asyncio.Future[Any]] = {}

    def register(self, key: CorrelationKey) -> asyncio.Future[Any]:
        """Create and store a pending continuation for ``key``.

        Raises DuplicateKeyError if ``key`` is already pending.
        """
        if key in self._pending:
            run_id, _, phase = key.partition(":")
            raise DuplicateKeyError(f"Stage request already pending for {key}", run_id=run_id, phase=phase)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        logger.debug("Registered stage request %s", key)
        return future

    def settle(self, key: CorrelationKey, outcome: Any) -> bool:
        """Deliver ``outcome`` to the waiter for ``key`` and forget it.

        An exception instance rejects the waiter; anything else resolves it.
        Returns False (and logs) when no live waiter exists. Never raises.
        """
        future = self._pending.pop(key, None)
        if future is None or future.done():
            self._report_orphan(key, outcome)
            return False

        if isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)
        logger.debug("Settled stage request %s", key)
        return True

    def discard(self, key: CorrelationKey) -> bool:
        """Drop ``key`` without settling it. Later completions become orphans."""
        return self._pending.pop(key, None) is not None

    def reject_all(self, error: BaseException) -> int:
        """Reject every pending waiter with ``error``. Returns the number rejected."""
        keys = list(self._pending)
        rejected = sum(1 for key in keys if self.settle(key, error))
        if rejected:
            logger.warning("Rejected %d pending stage request(s): %s", rejected, error)
        return rejected

    def is_pending(self, key: CorrelationKey) -> bool:
        return key in self._pending

    @property
    def pending_keys(self) -> tuple[CorrelationKey, ...]:
        """Keys currently awaiting settlement, in registration order."""
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    @staticmethod
    def _report_orphan(key: CorrelationKey, outcome: Any) -> None:
        run_id, _, phase = key.partition(":")
        orphan = OrphanEventError(f"No pending stage request for {key}", run_id=run_id, phase=phase)
        kind = "error" if isinstance(outcome, BaseException) else "result"
        logger.warning("Dropped orphan %s: %s", kind, orphan.message)
