"""
Best-effort push channel keyed by session id.

Delivery is at-most-once: publishing never raises into the caller, and
clients poll the leaderboard endpoint as the authoritative source.

Channels:
  game:{session_id}           -> all participants (scores, unlocks, status)
  game:{session_id}:operator  -> operator console (positions, geofence alerts)
"""
from __future__ import annotations
import asyncio
import json
from typing import Any, AsyncIterator
import structlog
import redis.asyncio as aioredis
from geoquest.config import settings

log = structlog.get_logger()


def session_channel(session_id) -> str:
    return f"game:{session_id}"


def operator_channel(session_id) -> str:
    return f"game:{session_id}:operator"


class RealtimeChannel:
    async def publish(self, channel: str, event: str, data: dict[str, Any]) -> None:
        raise NotImplementedError

    def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        raise NotImplementedError


class MemoryChannel(RealtimeChannel):
    """In-process broadcaster for dev and tests. Keeps a history of everything published."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self.history: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel: str, event: str, data: dict[str, Any]) -> None:
        msg = {"event": event, "data": data}
        self.history.append((channel, msg))
        for q in list(self._subscribers.get(channel, ())):
            q.put_nowait(msg)

    async def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        q: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(channel, set()).add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._subscribers[channel].discard(q)

    def events(self, channel: str) -> list[dict[str, Any]]:
        return [m for (c, m) in self.history if c == channel]


class RedisChannel(RealtimeChannel):
    def __init__(self, url: str) -> None:
        self._redis = aioredis.from_url(url, decode_responses=True)

    async def publish(self, channel: str, event: str, data: dict[str, Any]) -> None:
        await self._redis.publish(channel, json.dumps({"event": event, "data": data}, default=str))

    async def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    yield json.loads(raw["data"])
                except (TypeError, ValueError):
                    log.warning("realtime_bad_message", channel=channel)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


_channel: RealtimeChannel | None = None


def get_channel() -> RealtimeChannel:
    global _channel
    if _channel is None:
        if settings.realtime_backend == "memory":
            _channel = MemoryChannel()
        else:
            _channel = RedisChannel(settings.redis_url)
    return _channel


async def publish_safely(ch: RealtimeChannel, channel: str, event: str, data: dict[str, Any]) -> bool:
    try:
        await ch.publish(channel, event, data)
        return True
    except Exception as exc:
        log.warning("realtime_publish_failed", channel=channel, push_event=event, error=str(exc))
        return False

# ---------- event helpers ----------

async def broadcast_score_update(ch: RealtimeChannel, session_id, team_name: str, total_score: int) -> bool:
    return await publish_safely(ch, session_channel(session_id), "scoreUpdate",
                                {"teamName": team_name, "totalScore": total_score})


async def broadcast_checkpoint_unlocked(ch: RealtimeChannel, session_id, team_name: str, checkpoint_index: int,
                                        checkpoint_name: str | None = None) -> bool:
    return await publish_safely(ch, session_channel(session_id), "checkpointUnlocked",
                                {"teamName": team_name, "checkpointIndex": checkpoint_index,
                                 "checkpointName": checkpoint_name})


async def broadcast_session_status(ch: RealtimeChannel, session_id, status: str) -> bool:
    return await publish_safely(ch, session_channel(session_id), "sessionStatusChanged", {"status": status})


async def broadcast_team_position(ch: RealtimeChannel, session_id, team_name: str, lat: float, lng: float,
                                  is_outside_geofence: bool) -> bool:
    return await publish_safely(ch, operator_channel(session_id), "teamPosition",
                                {"teamName": team_name, "lat": lat, "lng": lng,
                                 "isOutsideGeofence": is_outside_geofence})


async def broadcast_geofence_alert(ch: RealtimeChannel, session_id, team_name: str, lat: float, lng: float) -> bool:
    return await publish_safely(ch, operator_channel(session_id), "geofenceAlert",
                                {"teamName": team_name, "lat": lat, "lng": lng})
