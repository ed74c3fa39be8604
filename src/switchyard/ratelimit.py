"""Per-session, per-user and per-address rate limiting with a blocklist.

Limits can be tightened adaptively under load. Tightening changes the limit
given to windows started afterwards; in-flight windows keep the limit they
were created with.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from switchyard.config import Settings, get_settings
from switchyard.models import AdmissionDecision, Identity

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Limits are halved while load is high
LOAD_TIGHTENING_FACTOR = 0.5


class RateScope(str, Enum):
    """Identity dimension a window is tracked under."""

    SESSION = "session"
    USER = "user"
    ADDRESS = "address"


@dataclass(frozen=True)
class ScopeLimit:
    """Static limit for one scope."""

    requests: int
    window_seconds: float


@dataclass
class RateWindowRecord:
    """Request counter for one (identifier, scope) pair."""

    window_start: float
    request_count: int
    effective_limit: int

    def expired(self, now: float, window_seconds: float) -> bool:
        return now - self.window_start > window_seconds


@dataclass(frozen=True)
class LimitResult:
    """Outcome of one check_limit call."""

    allowed: bool
    remaining: float
    retry_after: int | None = None


class RateLimiter:
    """Rolling-window limiter over independent scopes.

    All mutation happens under one lock, so increments from concurrent
    requests are never lost.
    """

    def __init__(
        self,
        limits: dict[RateScope, ScopeLimit] | None = None,
        block_seconds: float = 300,
        high_cpu_percent: float = 80.0,
        high_memory_percent: float = 85.0,
        clock: Clock = time.monotonic,
    ) -> None:
        hour = 3600.0
        self._default_limits = dict(
            limits
            or {
                RateScope.SESSION: ScopeLimit(50, hour),
                RateScope.USER: ScopeLimit(100, hour),
                RateScope.ADDRESS: ScopeLimit(500, hour),
            }
        )
        self._effective_limits = {s: l.requests for s, l in self._default_limits.items()}
        self._windows: dict[RateScope, dict[str, RateWindowRecord]] = {
            scope: {} for scope in self._default_limits
        }
        self._blocklist: dict[str, float] = {}
        self._block_seconds = block_seconds
        self._high_cpu = high_cpu_percent
        self._high_memory = high_memory_percent
        self._clock = clock
        self._lock = threading.Lock()
        self._high_load = False
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, clock: Clock = time.monotonic) -> RateLimiter:
        settings = settings or get_settings()
        window = float(settings.rate_window_seconds)
        return cls(
            limits={
                RateScope.SESSION: ScopeLimit(settings.session_limit, window),
                RateScope.USER: ScopeLimit(settings.user_limit, window),
                RateScope.ADDRESS: ScopeLimit(settings.address_limit, window),
            },
            block_seconds=settings.block_seconds,
            high_cpu_percent=settings.high_cpu_percent,
            high_memory_percent=settings.high_memory_percent,
            clock=clock,
        )

    def check_limit(self, identifier: str, scope: RateScope | str) -> LimitResult:
        """Count one request against the identifier's window in a scope.

        Unknown scopes are allowed without limit.

        Args:
            identifier: Session id, user id or network address.
            scope: Scope the identifier belongs to.

        Returns:
            LimitResult; a denial also blocklists the identifier.
        """
        try:
            scope = RateScope(scope)
        except ValueError:
            return LimitResult(allowed=True, remaining=math.inf)
        if scope not in self._default_limits:
            return LimitResult(allowed=True, remaining=math.inf)

        window_seconds = self._default_limits[scope].window_seconds
        with self._lock:
            now = self._clock()
            tracker = self._windows[scope]
            record = tracker.get(identifier)

            if record is None or record.expired(now, window_seconds):
                record = RateWindowRecord(
                    window_start=now,
                    request_count=1,
                    effective_limit=self._effective_limits[scope],
                )
                tracker[identifier] = record
            else:
                record.request_count += 1

            allowed = record.request_count <= record.effective_limit
            remaining = max(0, record.effective_limit - record.request_count)
            if not allowed:
                self._blocklist[identifier] = now + self._block_seconds

        if not allowed:
            logger.warning(f"Rate limit exceeded for {scope.value}: {identifier}")
            logger.info(f"Added to blocklist: {identifier} for {self._block_seconds}s")
            return LimitResult(
                allowed=False,
                remaining=remaining,
                retry_after=int(self._block_seconds),
            )
        return LimitResult(allowed=True, remaining=remaining)

    def block(self, identifier: str, seconds: float | None = None) -> None:
        """Blocklist an identifier for a cool-down period."""
        duration = self._block_seconds if seconds is None else seconds
        with self._lock:
            self._blocklist[identifier] = self._clock() + duration
        logger.info(f"Added to blocklist: {identifier} for {duration}s")

    def is_blocked(self, identifier: str) -> bool:
        return self.blocked_for(identifier) > 0

    def blocked_for(self, identifier: str) -> float:
        """Seconds until the identifier is unblocked (0 if not blocked).

        Expired blocklist entries are deleted on lookup.
        """
        with self._lock:
            unblock_at = self._blocklist.get(identifier)
            if unblock_at is None:
                return 0.0
            now = self._clock()
            if now >= unblock_at:
                del self._blocklist[identifier]
                return 0.0
            return unblock_at - now

    def adjust_limits_based_on_load(self, cpu_percent: float, memory_percent: float) -> bool:
        """Tighten or restore session and user limits from a load signal.

        Returns:
            True if load is considered high.
        """
        high_load = cpu_percent > self._high_cpu or memory_percent > self._high_memory
        with self._lock:
            for scope in (RateScope.SESSION, RateScope.USER):
                if scope not in self._default_limits:
                    continue
                default = self._default_limits[scope].requests
                if high_load:
                    self._effective_limits[scope] = max(1, int(default * LOAD_TIGHTENING_FACTOR))
                else:
                    self._effective_limits[scope] = default
            changed = high_load != self._high_load
            self._high_load = high_load

        if changed and high_load:
            logger.warning("Rate limits reduced due to high system load")
        elif changed:
            logger.info("Rate limits restored to defaults")
        return high_load

    def effective_limit(self, scope: RateScope) -> int:
        with self._lock:
            return self._effective_limits[scope]

    def window(self, identifier: str, scope: RateScope) -> RateWindowRecord | None:
        """Copy of the current window record, for inspection."""
        with self._lock:
            record = self._windows.get(scope, {}).get(identifier)
            if record is None:
                return None
            return RateWindowRecord(record.window_start, record.request_count, record.effective_limit)

    def cleanup(self) -> dict[str, int]:
        """Purge expired windows in every scope and elapsed blocklist entries."""
        windows_removed = 0
        with self._lock:
            now = self._clock()
            for scope, tracker in self._windows.items():
                window_seconds = self._default_limits[scope].window_seconds
                stale = [k for k, r in tracker.items() if r.expired(now, window_seconds)]
                for key in stale:
                    del tracker[key]
                windows_removed += len(stale)

            unblocked = [k for k, until in self._blocklist.items() if now >= until]
            for key in unblocked:
                del self._blocklist[key]

        if windows_removed or unblocked:
            logger.debug(
                f"Rate limiter cleanup: {windows_removed} windows, {len(unblocked)} blocks removed"
            )
        return {"windows_removed": windows_removed, "blocks_removed": len(unblocked)}

    def start_sweeper(self, interval_seconds: float = 300) -> None:
        """Run cleanup periodically on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return

        async def sweep() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                self.cleanup()

        self._sweeper = asyncio.get_running_loop().create_task(sweep())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "active_windows": {s.value: len(t) for s, t in self._windows.items()},
                "blocked_identifiers": len(self._blocklist),
                "high_load": self._high_load,
                "limits": {
                    s.value: {
                        "requests": self._effective_limits[s],
                        "default": l.requests,
                        "window_seconds": l.window_seconds,
                    }
                    for s, l in self._default_limits.items()
                },
            }


class AdmissionController:
    """Decides whether an inbound request is accepted at all."""

    SCOPE_ORDER: tuple[RateScope, ...] = (RateScope.SESSION, RateScope.USER, RateScope.ADDRESS)

    def __init__(self, limiter: RateLimiter) -> None:
        self._limiter = limiter

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def _identifiers(self, identity: Identity) -> list[tuple[RateScope, str]]:
        values = {
            RateScope.SESSION: identity.session,
            RateScope.USER: identity.user,
            RateScope.ADDRESS: identity.address,
        }
        return [(scope, values[scope]) for scope in self.SCOPE_ORDER if values[scope]]

    def admit(self, identity: Identity) -> AdmissionDecision:
        """Admit or deny a request.

        Blocklisted identifiers are rejected before any window counter is
        touched. Otherwise each scope is counted in order and the first
        denial stops evaluation.
        """
        identifiers = self._identifiers(identity)

        for scope, identifier in identifiers:
            remaining_block = self._limiter.blocked_for(identifier)
            if remaining_block > 0:
                logger.info(f"Rejected blocklisted {scope.value}: {identifier}")
                return AdmissionDecision(
                    allowed=False,
                    reason="blocked",
                    scope=scope.value,
                    retry_after_seconds=max(1, math.ceil(remaining_block)),
                )

        remaining: float = math.inf
        for scope, identifier in identifiers:
            result = self._limiter.check_limit(identifier, scope)
            if not result.allowed:
                return AdmissionDecision(
                    allowed=False,
                    reason="rate_limited",
                    scope=scope.value,
                    retry_after_seconds=result.retry_after,
                    remaining=0,
                )
            remaining = min(remaining, result.remaining)

        return AdmissionDecision(
            allowed=True,
            remaining=None if math.isinf(remaining) else int(remaining),
        )


__all__ = [
    "AdmissionController",
    "LimitResult",
    "RateLimiter",
    "RateScope",
    "RateWindowRecord",
    "ScopeLimit",
]
