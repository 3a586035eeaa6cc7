from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone

WINDOW_SECONDS = 60
SWEEP_THRESHOLD = 1024


@dataclass
class _WindowState:
    count: int
    reset_at: float


@dataclass
class _DailyState:
    day: date
    count: int


@dataclass(frozen=True)
class RateLimitDecision:
    limited: bool
    scope: str | None = None
    reason: str | None = None
    retry_after_seconds: int = 0


def _seconds_until_midnight(now: datetime) -> int:
    midnight = datetime.combine(now.date(), datetime.min.time(), tzinfo=timezone.utc).timestamp() + 86400
    return max(1, math.ceil(midnight - now.timestamp()))


class WebhookRateLimiter:
    """Per-IP and per-integration fixed windows plus a per-integration daily cap.

    State is process local and is lost on restart. Expired windows are swept at
    most once per window once the tracked keys pass ``sweep_threshold``.
    """

    def __init__(
        self,
        *,
        sweep_threshold: int = SWEEP_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._sweep_threshold = sweep_threshold
        self._clock = clock
        self._last_sweep = clock()
        self._ip_windows: dict[str, _WindowState] = {}
        self._token_windows: dict[str, _WindowState] = {}
        self._daily: dict[str, _DailyState] = {}

    def check(
        self,
        integration_id: str,
        client_ip: str,
        *,
        per_ip_limit: int,
        per_token_limit: int,
        daily_limit: int,
    ) -> RateLimitDecision:
        now = self._clock()
        wall_now = datetime.now(timezone.utc)

        with self._lock:
            self._sweep(now, wall_now.date())
            ip_state = self._hit(self._ip_windows, client_ip, now)
            if ip_state.count > per_ip_limit:
                return RateLimitDecision(
                    limited=True,
                    scope="ip",
                    reason="IP rate limit exceeded",
                    retry_after_seconds=max(1, math.ceil(ip_state.reset_at - now)),
                )

            token_state = self._hit(self._token_windows, integration_id, now)
            daily_state = self._daily.get(integration_id)
            if daily_state is None or daily_state.day != wall_now.date():
                daily_state = _DailyState(day=wall_now.date(), count=0)
                self._daily[integration_id] = daily_state
            daily_state.count += 1

            if token_state.count > per_token_limit:
                return RateLimitDecision(
                    limited=True,
                    scope="token",
                    reason=f"Token rate limit exceeded (max {per_token_limit}/minute)",
                    retry_after_seconds=max(1, math.ceil(token_state.reset_at - now)),
                )
            if daily_state.count > daily_limit:
                return RateLimitDecision(
                    limited=True,
                    scope="daily",
                    reason=f"Daily limit exceeded (max {daily_limit} calls/day per integration)",
                    retry_after_seconds=_seconds_until_midnight(wall_now),
                )
        return RateLimitDecision(limited=False)

    def _sweep(self, now: float, today: date) -> None:
        tracked = len(self._ip_windows) + len(self._token_windows) + len(self._daily)
        if tracked < self._sweep_threshold or now - self._last_sweep < WINDOW_SECONDS:
            return
        for windows in (self._ip_windows, self._token_windows):
            for key in [key for key, state in windows.items() if now > state.reset_at]:
                del windows[key]
        for key in [key for key, state in self._daily.items() if state.day != today]:
            del self._daily[key]
        self._last_sweep = now

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._ip_windows) + len(self._token_windows) + len(self._daily)

    @staticmethod
    def _hit(windows: dict[str, _WindowState], key: str, now: float) -> _WindowState:
        state = windows.get(key)
        if state is None or now > state.reset_at:
            state = _WindowState(count=0, reset_at=now + WINDOW_SECONDS)
            windows[key] = state
        state.count += 1
        return state

    def clear(self) -> None:
        with self._lock:
            self._ip_windows.clear()
            self._token_windows.clear()
            self._daily.clear()


_limiter = WebhookRateLimiter()


def get_rate_limiter() -> WebhookRateLimiter:
    return _limiter


def reset_rate_limiter() -> None:
    _limiter.clear()
