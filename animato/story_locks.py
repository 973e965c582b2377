"""
Per-story single-flight guard.

Only one workflow invocation may hold a story at a time; a second one is
rejected with WorkflowBusyError instead of queueing, so a double click
never produces two videos.

Two layers:
  1. In-process asyncio.Lock per story id (always)
  2. Redis lease `storylock:{story_id}` via SET NX EX (when REDIS_URL is set),
     so separate worker processes exclude each other too

If Redis is unreachable the registry falls back to the in-process lock only.
"""

import asyncio
import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as aioredis

from .pipeline.errors import WorkflowBusyError

logger = logging.getLogger(__name__)

LOCK_PREFIX = "storylock:"
LEASE_SECONDS = int(os.getenv("STORY_LOCK_LEASE_SECONDS", "900"))

# Deletes the lease only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def redis_from_env() -> Optional[aioredis.Redis]:
    """Build an asyncio Redis client from REDIS_URL, or None if unset."""
    redis_url = os.environ.get("REDIS_URL")
    if not redis_url:
        return None
    return aioredis.from_url(redis_url, decode_responses=True)


class StoryLockRegistry:
    def __init__(self, redis_client: Optional[aioredis.Redis] = None, lease_seconds: int = LEASE_SECONDS):
        self._redis = redis_client
        self._lease_seconds = lease_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    def is_held(self, story_id: str) -> bool:
        lock = self._locks.get(story_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, story_id: str):
        """Hold a story for the duration of the block, or raise WorkflowBusyError."""
        lock = self._locks.setdefault(story_id, asyncio.Lock())
        if lock.locked():
            logger.warning(f"[{story_id}] Workflow rejected: story already in progress")
            raise WorkflowBusyError(story_id)

        await lock.acquire()
        token = None
        try:
            token = await self._acquire_lease(story_id)
            yield
        finally:
            if token:
                await self._release_lease(story_id, token)
            lock.release()
            if not lock.locked():
                self._locks.pop(story_id, None)

    async def _acquire_lease(self, story_id: str) -> Optional[str]:
        if self._redis is None:
            return None
        token = secrets.token_hex(16)
        try:
            acquired = await self._redis.set(
                f"{LOCK_PREFIX}{story_id}", token, nx=True, ex=self._lease_seconds,
            )
        except Exception as e:
            logger.warning(f"[{story_id}] Redis lock unavailable ({e}) — using in-process lock only")
            return None
        if not acquired:
            logger.warning(f"[{story_id}] Workflow rejected: story held by another worker")
            raise WorkflowBusyError(story_id)
        return token

    async def _release_lease(self, story_id: str, token: str):
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, f"{LOCK_PREFIX}{story_id}", token)
        except Exception as e:
            logger.warning(f"[{story_id}] Failed to release Redis lock, lease will expire: {e}")
