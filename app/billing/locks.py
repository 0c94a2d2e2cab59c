"""
Redis-based distributed lock for serializing billing sweeps.

Subscription sweeps iterate every user and must not overlap: two
concurrent runs would race on the same rows. Each periodic task takes a
non-blocking lock; if another worker holds it the tick is skipped.

Usage:
    from billing.locks import DistributedLock

    with DistributedLock("billing:sweep:expiry", ttl=600, blocking=False):
        SubscriptionService.process_expired_subscriptions()
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from billing.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from redis import Redis


class DistributedLock:
    """
    Redis lock with a TTL and token-checked release.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until the lock frees itself if the holder dies
        blocking: Wait up to ``timeout`` seconds instead of failing at once
        timeout: Maximum wait in blocking mode

    Raises:
        LockAcquisitionError: From acquire()/__enter__ when the lock is held
    """

    # Delete only if we still own the key
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        self._token = str(uuid.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while time.monotonic() < deadline:
                if redis.set(self.key, self._token, nx=True, ex=self.ttl):
                    return True
                time.sleep(0.05)
            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, self._token, nx=True, ex=self.ttl):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def release(self) -> bool:
        """Release if held. Safe to call more than once."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
