"""
Per-deposit leases and the gas payer signer mutex.

RedisLocks is for multi-worker deployments (Celery workers on several hosts);
ProcessLocks covers a single process and the test suite.
"""

from __future__ import annotations

import logging
import os
import random
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

LEASE_KEY = "treasury:lease:{address}"
SIGNER_KEY = "treasury:signer:{address}"

# delete only if the token still matches, so an expired lease that another
# run re-acquired is left alone. returns 1 if deleted, 0 otherwise
_UNLOCK_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
  return redis.call('del', KEYS[1])
else
  return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class RedisLocks:
    def __init__(
        self,
        r: Optional[Redis] = None,
        *,
        redis_url: str = "redis://redis:6379/0",
        lease_seconds: int = 900,
        signer_wait_seconds: int = 600,
        backoff_base: float = 0.05,
        backoff_cap: float = 2.0,
    ):
        self.r = r or Redis.from_url(redis_url)
        self.lease_seconds = lease_seconds
        self.signer_wait_seconds = signer_wait_seconds
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap

    @contextmanager
    def deposit(self, address: str) -> Iterator[None]:
        """Lease on one deposit address. Fails immediately if already held."""
        key = LEASE_KEY.format(address=address.lower())
        token = self._token()
        if not self.r.set(key, token, nx=True, ex=self.lease_seconds):
            raise LockNotAcquired(f"Deposit {address} already has an active run")
        try:
            yield
        finally:
            self._release(key, token)

    @contextmanager
    def signer(self, address: str) -> Iterator[None]:
        """
        Mutex on a signing address, held across send and receipt so only one
        transaction from that signer is in flight at a time.

        Waits up to `signer_wait_seconds` with exponential backoff and jitter.
        The key TTL matches the wait so a crashed holder cannot block forever.
        """
        key = SIGNER_KEY.format(address=address.lower())
        token = self._token()
        deadline = time.monotonic() + self.signer_wait_seconds
        attempt = 0
        while not self.r.set(key, token, nx=True, ex=self.signer_wait_seconds):
            if time.monotonic() >= deadline:
                raise LockNotAcquired(f"Signer {address} busy for {self.signer_wait_seconds}s")
            sleep_s = min(
                self.backoff_cap, self.backoff_base * (2**attempt)
            ) * (0.5 + random.random())
            time.sleep(sleep_s)
            attempt += 1
        try:
            yield
        finally:
            self._release(key, token)

    def _release(self, key: str, token: str) -> None:
        try:
            self.r.eval(_UNLOCK_LUA, 1, key, token)
        except RedisError:
            # the key still expires on its own TTL
            logger.warning(f"[Locks] Could not release {key}", exc_info=True)

    @staticmethod
    def _token() -> str:
        return f"{time.time()}:{os.getpid()}:{random.random()}"


class ProcessLocks:
    """In-process equivalent of RedisLocks built on threading.Lock."""

    def __init__(self, *, signer_wait_seconds: int = 600):
        self.signer_wait_seconds = signer_wait_seconds
        self._guard = threading.Lock()
        # key -> [lock, number of callers holding or waiting on it]
        self._locks: Dict[str, list] = {}

    @contextmanager
    def _entry(self, key: str) -> Iterator[threading.Lock]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            yield entry[0]
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    @contextmanager
    def deposit(self, address: str) -> Iterator[None]:
        with self._entry(LEASE_KEY.format(address=address.lower())) as lock:
            if not lock.acquire(blocking=False):
                raise LockNotAcquired(f"Deposit {address} already has an active run")
            try:
                yield
            finally:
                lock.release()

    @contextmanager
    def signer(self, address: str) -> Iterator[None]:
        with self._entry(SIGNER_KEY.format(address=address.lower())) as lock:
            if not lock.acquire(timeout=self.signer_wait_seconds):
                raise LockNotAcquired(f"Signer {address} busy for {self.signer_wait_seconds}s")
            try:
                yield
            finally:
                lock.release()


def build_locks(config):
    if config.lock_backend == "local":
        return ProcessLocks(signer_wait_seconds=config.signer_lock_wait_seconds)
    return RedisLocks(
        redis_url=config.redis_url,
        lease_seconds=config.run_lease_seconds,
        signer_wait_seconds=config.signer_lock_wait_seconds,
    )
