"""Guarded transitions and exactly-once dispatch.

A claim is a single conditional ``UPDATE ... WHERE id = :id AND status IN
(...)``. Whoever changes the row owns the side effect; everyone else sees
``ALREADY_CLAIMED`` and does nothing. A claimed execution always ends in
its complete or fail transition.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from sqlalchemy import select, update

from claritycall.config import get_settings
from claritycall.database import get_session
from claritycall.logging_config import get_logger
from claritycall.modules.dispatch.transitions import Transition

logger = get_logger(__name__)

T = TypeVar("T")


class ClaimOutcome(StrEnum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


@dataclass
class DispatchResult(Generic[T]):
    """How one dispatch attempt ended."""
    outcome: ClaimOutcome
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ClaimOutcome.CLAIMED and self.error is None

    def describe(self) -> str:
        if self.outcome == ClaimOutcome.ALREADY_CLAIMED:
            return "already claimed"
        return "completed" if self.succeeded else f"failed: {self.error}"


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "Timed out waiting for the provider"
    return str(exc) or type(exc).__name__


class DispatchStateMachine:
    """Applies transitions atomically and runs claimed side effects."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._timeout = timeout if timeout is not None else get_settings().clarity_provider_timeout_seconds

    async def apply(self, transition: Transition) -> bool:
        """Apply ``transition``; ``True`` only when exactly one row moved."""
        entity = transition.entity
        stmt = (
            update(entity)
            .where(entity.id == transition.record_id)
            .where(entity.status.in_([str(s) for s in transition.from_statuses]))
            .values(**transition.values())
            .execution_options(synchronize_session=False)
        )
        async with get_session() as session:
            result = await session.execute(stmt)
        changed = result.rowcount == 1
        if changed:
            logger.info(
                "transition_applied",
                transition=transition.name,
                record_id=transition.record_id,
                to_status=str(transition.to_status),
            )
        else:
            logger.debug(
                "transition_refused",
                transition=transition.name,
                record_id=transition.record_id,
            )
        return changed

    async def claim(self, transition: Transition) -> ClaimOutcome:
        if await self.apply(transition):
            return ClaimOutcome.CLAIMED
        return ClaimOutcome.ALREADY_CLAIMED

    async def dispatch(
        self,
        claim: Transition,
        side_effect: Callable[[], Awaitable[T]],
        complete: Callable[[T], Transition],
        fail: Callable[[str], Transition],
    ) -> DispatchResult[T]:
        """Claim, run ``side_effect`` under the provider timeout, then finish.

        Args:
            claim: The guarded transition into the in-flight status.
            side_effect: Coroutine factory run only after a successful claim.
            complete: Builds the success transition from the side effect's result.
            fail: Builds the failure transition from an error message.
        """
        if await self.claim(claim) == ClaimOutcome.ALREADY_CLAIMED:
            logger.debug("dispatch_already_claimed", transition=claim.name, record_id=claim.record_id)
            return DispatchResult(outcome=ClaimOutcome.ALREADY_CLAIMED)

        try:
            value = await asyncio.wait_for(side_effect(), timeout=self._timeout)
        except asyncio.CancelledError:
            await self.apply(fail("Dispatch cancelled"))
            raise
        except Exception as exc:
            message = _error_text(exc)
            await self.apply(fail(message))
            logger.warning("dispatch_failed", transition=claim.name, record_id=claim.record_id, error=message)
            return DispatchResult(outcome=ClaimOutcome.CLAIMED, error=message)

        try:
            await self.apply(complete(value))
        except Exception as exc:
            message = f"Could not record completion: {_error_text(exc)}"
            logger.error("dispatch_complete_failed", transition=claim.name, record_id=claim.record_id, error=message)
            await self.apply(fail(message))
            return DispatchResult(outcome=ClaimOutcome.CLAIMED, value=value, error=message)

        logger.info("dispatch_completed", transition=claim.name, record_id=claim.record_id)
        return DispatchResult(outcome=ClaimOutcome.CLAIMED, value=value)

    async def fail_stale(
        self,
        entity: type,
        in_flight_status: str,
        fail: Callable[[str], Transition],
        now: Optional[dt.datetime] = None,
    ) -> int:
        """Fail records left in flight for longer than the provider timeout.

        A claim without a terminal write means the process died mid-dispatch;
        run this at startup so such records never stay claimed.
        """
        now = now or dt.datetime.now(dt.UTC)
        cutoff = now - dt.timedelta(seconds=self._timeout)
        async with get_session() as session:
            result = await session.execute(
                select(entity.id)
                .where(entity.status == str(in_flight_status))
                .where(entity.updated_at < cutoff)
            )
            stale = list(result.scalars().all())

        failed = 0
        for record_id in stale:
            if await self.apply(fail(record_id)):
                failed += 1
        if failed:
            logger.warning("stale_dispatch_failed", entity=entity.__name__, count=failed)
        return failed
