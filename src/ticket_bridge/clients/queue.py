"""Thin wrapper around redis-py used as the durable work queue."""

from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional

import redis

from ticket_bridge import constants


class QueueError(RuntimeError):
    """Raised when the queue store cannot be reached."""


def dedupe_key(conversation_id: str, sender_id: str, text: str) -> str:
    """Derive the dedupe marker key for an inbound message."""
    digest = hashlib.sha256(f"{conversation_id}|{sender_id}|{text}".encode("utf-8")).hexdigest()
    return f"{constants.DEDUPE_PREFIX}{digest}"


def cooldown_key(scope: str, entity_id: str) -> str:
    return f"{constants.COOLDOWN_PREFIX}{scope}:{entity_id}"


# KEYS: markers to claim; ARGV[i]: expiry in seconds for KEYS[i].
_CLAIM_ALL_SCRIPT = """
for _, key in ipairs(KEYS) do
    if redis.call('EXISTS', key) == 1 then
        return 0
    end
end
for i, key in ipairs(KEYS) do
    redis.call('SET', key, '1', 'EX', ARGV[i])
end
return 1
"""


class RedisQueue:
    """Work lists and control markers kept in Redis.

    Producers ``LPUSH`` and consumers ``BRPOP``, so each list behaves as a
    FIFO. Requeued entries are pushed with ``LPUSH`` as well and therefore
    land behind everything already waiting.
    """

    def __init__(self, client: Optional[Any] = None, url: Optional[str] = None) -> None:
        if client is None:
            if url is None:
                raise ValueError("Either a redis client or a redis URL is required.")
            client = redis.Redis.from_url(url, decode_responses=True)
        self._client = client
        self._claim_all = client.register_script(_CLAIM_ALL_SCRIPT)

    @classmethod
    def from_url(cls, url: str) -> "RedisQueue":
        return cls(url=url)

    # Work lists ----------------------------------------------------------------
    def push(self, queue: str, payload: str) -> None:
        try:
            self._client.lpush(queue, payload)
        except redis.RedisError as exc:
            raise QueueError(f"Failed to push onto '{queue}'.") from exc

    def pop(self, queue: str, timeout: int = 0) -> Optional[str]:
        """Block until an entry is available or ``timeout`` seconds elapse."""
        try:
            result = self._client.brpop([queue], timeout=timeout)
        except redis.RedisError as exc:
            raise QueueError(f"Failed to pop from '{queue}'.") from exc
        if not result:
            return None
        return result[1]

    def requeue(self, queue: str, payload: str) -> None:
        self.push(queue, payload)

    def depth(self, queue: str) -> int:
        try:
            return int(self._client.llen(queue))
        except redis.RedisError as exc:
            raise QueueError(f"Failed to read depth of '{queue}'.") from exc

    # Control plane ---------------------------------------------------------------
    def is_paused(self) -> bool:
        try:
            return bool(self._client.get(constants.PAUSE_KEY))
        except redis.RedisError as exc:
            raise QueueError("Failed to read pause flag.") from exc

    def set_paused(self, paused: bool) -> None:
        try:
            if paused:
                self._client.set(constants.PAUSE_KEY, "1")
            else:
                self._client.delete(constants.PAUSE_KEY)
        except redis.RedisError as exc:
            raise QueueError("Failed to update pause flag.") from exc

    def claim(self, key: str, ttl_seconds: int) -> bool:
        """Set ``key`` only if absent, expiring after ``ttl_seconds``.

        Returns True for the single caller that created the marker.
        """
        try:
            return bool(self._client.set(key, "1", nx=True, ex=ttl_seconds))
        except redis.RedisError as exc:
            raise QueueError(f"Failed to claim '{key}'.") from exc

    def claim_all(self, ttls: Dict[str, int]) -> bool:
        """Claim every marker in ``ttls`` or none of them.

        Succeeds only when no key is live; the keys are then set with their
        own expiry in the same server-side step.
        """
        keys = list(ttls)
        try:
            return bool(self._claim_all(keys=keys, args=[ttls[key] for key in keys]))
        except redis.RedisError as exc:
            raise QueueError(f"Failed to claim {keys}.") from exc

    def release(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise QueueError(f"Failed to release '{key}'.") from exc

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
