from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any
from uuid import UUID

import redis.asyncio as redis

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None

async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis

def _json_default(value: Any) -> Any:
    # purpose: convert datetime and uuid values to strings for event payloads
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _serialize_event(event: dict[str, Any]) -> str:
    # purpose: normalise event dictionaries into JSON strings for redis pub/sub
    return json.dumps(event, default=_json_default)


def user_channel(user_id: str | UUID) -> str:
    return f"user:{user_id}"


async def publish_user_event(user_id: str | UUID, event: dict[str, Any]) -> None:
    # purpose: push notification lifecycle events to a single user's listeners
    r = await get_redis()
    await r.publish(user_channel(user_id), _serialize_event(event))
