import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


@dataclass
class RateLimitResult:
    success: bool
    remaining: int


class RateLimiter:
    """按客户端标识的固定窗口计数器"""

    def __init__(self, limit: int = 10, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)

            if entry is None or now > entry.reset_time:
                # 首次请求或窗口已过期
                self._store[key] = RateLimitEntry(count=1, reset_time=now + self.window_seconds)
                return RateLimitResult(success=True, remaining=self.limit - 1)

            if entry.count >= self.limit:
                return RateLimitResult(success=False, remaining=0)

            entry.count += 1
            return RateLimitResult(success=True, remaining=self.limit - entry.count)

    def cleanup(self) -> int:
        """删除窗口已过期的条目，返回删除数量"""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._store.items() if now > entry.reset_time]
            for key in expired:
                del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
