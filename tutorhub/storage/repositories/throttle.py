"""Throttle ledger: fixed-window attempt counters with cooldown escalation.

Each scope key owns ``{window_start, attempt_count, cooldown_until}``. A call
to ``check_and_record`` does the whole read-increment-compare in one atomic
step, so two concurrent attempts on the same key can never both slip under
the limit.

Per call:

* inside an active cooldown: denied, nothing changes;
* cooldown elapsed or window older than ``window_seconds``: window restarts;
* otherwise the count is incremented, and exceeding ``max_attempts`` starts a
  cooldown of ``cooldown_seconds``.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import structlog
from sqlalchemy import DateTime, and_, case, literal, null, or_
from sqlalchemy.dialects import postgresql, sqlite

from tutorhub.exceptions import StorageError
from tutorhub.models.database import ThrottleRecord, _utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tutorhub.types import Clock

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ThrottleDecision:
    allowed: bool
    retry_after: int | None = None  # seconds, only set when denied


class ThrottleLedger(Protocol):
    async def check_and_record(
        self,
        scope_key: str,
        *,
        window_seconds: int,
        max_attempts: int,
        cooldown_seconds: int,
    ) -> ThrottleDecision: ...


def _decide(cooldown_until: datetime | None, now: datetime) -> ThrottleDecision:
    if cooldown_until is not None and cooldown_until > now:
        retry_after = max(1, math.ceil((cooldown_until - now).total_seconds()))
        return ThrottleDecision(allowed=False, retry_after=retry_after)
    return ThrottleDecision(allowed=True)


@dataclass(frozen=True, slots=True)
class _WindowState:
    window_start: datetime
    attempt_count: int
    cooldown_until: datetime | None = None


def _advance(
    state: _WindowState | None,
    now: datetime,
    window_seconds: int,
    max_attempts: int,
    cooldown_seconds: int,
) -> _WindowState:
    cooldown_end = now + timedelta(seconds=cooldown_seconds)
    if state is not None and state.cooldown_until is not None and state.cooldown_until > now:
        return state
    if (
        state is None
        or state.cooldown_until is not None
        or now - state.window_start > timedelta(seconds=window_seconds)
    ):
        return _WindowState(
            window_start=now,
            attempt_count=1,
            cooldown_until=cooldown_end if max_attempts < 1 else None,
        )
    count = state.attempt_count + 1
    return replace(
        state,
        attempt_count=count,
        cooldown_until=cooldown_end if count > max_attempts else None,
    )


class InMemoryThrottleLedger:
    """Process-local ledger; a lock makes each check-and-record atomic."""

    def __init__(self, clock: Clock = _utc_now) -> None:
        self._clock = clock
        self._records: dict[str, _WindowState] = {}
        self._lock = threading.Lock()

    async def check_and_record(
        self,
        scope_key: str,
        *,
        window_seconds: int,
        max_attempts: int,
        cooldown_seconds: int,
    ) -> ThrottleDecision:
        now = self._clock()
        with self._lock:
            state = _advance(
                self._records.get(scope_key), now, window_seconds, max_attempts, cooldown_seconds
            )
            self._records[scope_key] = state
        return _decide(state.cooldown_until, now)


_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class DatabaseThrottleLedger:
    """Ledger backed by ``throttle_records`` using a single upsert per attempt.

    ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` evaluates the window
    rules against the locked row, which keeps the increment atomic without a
    separate read.
    """

    def __init__(self, engine: AsyncEngine, clock: Clock = _utc_now) -> None:
        self._engine = engine
        self._clock = clock
        insert = _INSERTS.get(engine.dialect.name)
        if insert is None:
            msg = f"Throttle ledger does not support dialect {engine.dialect.name!r}"
            raise StorageError(msg)
        self._insert = insert

    async def check_and_record(
        self,
        scope_key: str,
        *,
        window_seconds: int,
        max_attempts: int,
        cooldown_seconds: int,
    ) -> ThrottleDecision:
        now = self._clock()
        window_floor = now - timedelta(seconds=window_seconds)
        cooldown_end = now + timedelta(seconds=cooldown_seconds)
        fresh_cooldown = cooldown_end if max_attempts < 1 else None

        table = ThrottleRecord.__table__  # type: ignore[attr-defined]
        c = table.c
        now_value = literal(now, DateTime())
        cooldown_value = literal(cooldown_end, DateTime())
        fresh_value = literal(fresh_cooldown, DateTime()) if fresh_cooldown else null()

        in_cooldown = and_(c.cooldown_until.is_not(None), c.cooldown_until > now)
        restart = or_(c.cooldown_until.is_not(None), c.window_start < window_floor)

        stmt = (
            self._insert(table)
            .values(
                scope_key=scope_key,
                window_start=now,
                attempt_count=1,
                cooldown_until=fresh_cooldown,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[c.scope_key],
                set_={
                    "window_start": case(
                        (in_cooldown, c.window_start),
                        (restart, now_value),
                        else_=c.window_start,
                    ),
                    "attempt_count": case(
                        (in_cooldown, c.attempt_count),
                        (restart, 1),
                        else_=c.attempt_count + 1,
                    ),
                    "cooldown_until": case(
                        (in_cooldown, c.cooldown_until),
                        (restart, fresh_value),
                        (c.attempt_count + 1 > max_attempts, cooldown_value),
                        else_=null(),
                    ),
                    "updated_at": now_value,
                },
            )
            .returning(c.attempt_count, c.cooldown_until)
        )

        async with self._engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.one()

        decision = _decide(row.cooldown_until, now)
        if not decision.allowed:
            logger.info("throttle_denied", attempts=row.attempt_count)
        return decision
