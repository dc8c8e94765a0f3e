"""Daily usage quota with lockout."""

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, Optional

from feed_shield.core.entities import QuotaState, TickResult
from feed_shield.core.interfaces import KeyValueStore

logger = logging.getLogger(__name__)

QUOTA_KEY = "quota"

LockoutCallback = Callable[[], Awaitable[None]]


class QuotaTracker:
    """Count foreground seconds per calendar day and lock out at the limit.

    Every read-modify-write of the quota state goes through one
    ``asyncio.Lock``; concurrent heartbeats from several surfaces must not
    double-count or skip the threshold. ``locked`` only ever goes from
    False to True within a day; the daily rollover is the only reset.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit_seconds: int = 900,
        tick_seconds: int = 10,
        on_lockout: Optional[LockoutCallback] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.limit_seconds = limit_seconds
        self.tick_seconds = tick_seconds
        self.on_lockout = on_lockout
        self.today = today
        self._lock = asyncio.Lock()

    async def on_tick(self) -> TickResult:
        """Account one liveness tick from a foreground surface."""
        async with self._lock:
            state = await self._load()

            if state.locked:
                return TickResult(remaining=0, locked=True)

            state.used_seconds += self.tick_seconds
            if state.used_seconds >= state.limit_seconds:
                state.locked = True
            await self._save(state)

            if state.locked:
                logger.warning(
                    "Daily limit reached: %ds used of %ds", state.used_seconds, state.limit_seconds
                )
                if self.on_lockout is not None:
                    await self.on_lockout()

            return TickResult(
                remaining=max(0, state.limit_seconds - state.used_seconds),
                locked=state.locked,
            )

    async def get_state(self) -> QuotaState:
        """Current state after applying any pending rollover."""
        async with self._lock:
            return await self._load()

    async def is_locked(self) -> bool:
        state = await self.get_state()
        return state.locked

    async def set_limit(self, limit_seconds: int) -> None:
        """Change the daily budget. A lockout already in force is kept."""
        async with self._lock:
            self.limit_seconds = limit_seconds
            state = await self._load()
            await self._save(state)

    async def reset_day(self) -> QuotaState:
        """Start a fresh day: zero usage and clear the lockout."""
        async with self._lock:
            state = self._fresh()
            await self._save(state)
            logger.info("Quota reset for %s", state.date)
            return state

    async def _load(self) -> QuotaState:
        raw = await self.store.get(QUOTA_KEY)
        today = self.today().isoformat()

        if not isinstance(raw, dict) or raw.get("date") != today:
            state = self._fresh()
            await self._save(state)
            return state

        return QuotaState(
            date=today,
            used_seconds=int(raw.get("used_seconds", 0)),
            limit_seconds=self.limit_seconds,
            locked=bool(raw.get("locked", False)),
        )

    async def _save(self, state: QuotaState) -> None:
        await self.store.set(
            QUOTA_KEY,
            {"date": state.date, "used_seconds": state.used_seconds, "locked": state.locked},
        )

    def _fresh(self) -> QuotaState:
        return QuotaState(date=self.today().isoformat(), limit_seconds=self.limit_seconds)
