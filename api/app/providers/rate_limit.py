# providers/rate_limit.py

import math
import threading
import time
from typing import Callable, Mapping, Optional, Protocol

from pydantic import BaseModel


class CounterStore(Protocol):
    def increment(self, key: str) -> tuple[int, float]:
        # キーのカウンタを1増やし、(現在のカウント, リセット時刻(epoch秒)) を返す
        ...


# プロセス内メモリの固定ウィンドウカウンタ。永続化・プロセス間共有はしないため単一インスタンス前提
class InMemoryCounterStore:
    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, key: str) -> tuple[int, float]:
        with self._lock:
            now = self.clock()
            count, reset_at = self._counters.get(key, (0, 0.0))
            if now > reset_at:
                # 初回またはウィンドウ切れ
                count, reset_at = 0, now + self.window_seconds
            count += 1
            self._counters[key] = (count, reset_at)
            return count, reset_at


class RateLimitDecision(BaseModel):
    allowed: bool
    count: int
    limit: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def remaining_minutes(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(0, math.ceil((self.reset_at - now) / 60))


class RateLimiter:
    def __init__(self, store: CounterStore, limit: int):
        self.store = store
        self.limit = limit

    def check(self, key: str) -> RateLimitDecision:
        count, reset_at = self.store.increment(key)
        return RateLimitDecision(
            allowed=count <= self.limit,
            count=count,
            limit=self.limit,
            reset_at=reset_at,
        )


def client_key(headers: Mapping[str, str], fallback: Optional[str] = None) -> str:
    # プロキシ経由の場合は先頭のクライアントIPを使う
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        if headers.get(header):
            return headers[header].strip()

    return fallback or "unknown"
