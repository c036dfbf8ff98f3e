import asyncio
import json
import time
from typing import Optional

from .errors import RequestInProgress

IDEMPOTENCY_TTL_SECONDS = 300
# a crashed owner must not pin its key for the full TTL
PENDING_TTL_SECONDS = 30
WAIT_SECONDS = 10.0
POLL_SECONDS = 0.05

_PENDING = json.dumps({"pending": True})


def _key(scope: str, idem_key: str) -> str:
    return f"idem:{scope}:{idem_key}"


async def get_cached_response(redis, scope: str, idem_key: str) -> Optional[dict]:
    raw = await redis.get(_key(scope, idem_key))
    return json.loads(raw) if raw else None


async def claim_key(redis, scope: str, idem_key: str, wait_seconds: float = WAIT_SECONDS) -> Optional[dict]:
    """
    Take ownership of an idempotency key, or return the answer already pinned to it.

    Returns None when the caller now owns the key and must produce the response
    (then set_cached_response or release_key). If another request owns the key,
    waits for its answer; raises RequestInProgress if none arrives in time.
    """
    key = _key(scope, idem_key)
    deadline = time.monotonic() + wait_seconds
    while True:
        if await redis.set(key, _PENDING, nx=True, ex=PENDING_TTL_SECONDS):
            return None

        cached = await get_cached_response(redis, scope, idem_key)
        if cached is not None and not cached.get("pending"):
            return cached
        if time.monotonic() >= deadline:
            raise RequestInProgress()
        await asyncio.sleep(POLL_SECONDS)


async def set_cached_response(redis, scope: str, idem_key: str, status_code: int, body: dict,
                              ttl_seconds: int = IDEMPOTENCY_TTL_SECONDS):
    payload = {"status_code": status_code, "body": body}
    await redis.set(_key(scope, idem_key), json.dumps(payload), ex=ttl_seconds)


async def release_key(redis, scope: str, idem_key: str):
    await redis.delete(_key(scope, idem_key))
