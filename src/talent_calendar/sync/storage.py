"""
Sync Storage Manager

This module provides storage for talent calendar data: Google connections,
calendar events, pending conflicts, document access state and sync history.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional
import redis.asyncio as aioredis
from datetime import time

from talent_calendar.services.calendar_event import CalendarConnection, CalendarEvent, utcnow
from talent_calendar.utils.config import settings

# Set up logging
logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"

class SyncStorageManager:
    """
    Manages storage for calendar synchronization data.
    Supports both Redis and file-based storage.
    """

    def __init__(self, use_redis: Optional[bool] = None, storage_path: Optional[str] = None):
        """Initialize the storage manager"""
        if use_redis is None:
            use_redis = settings.USE_REDIS
        self.use_redis = bool(use_redis and settings.REDIS_HOST)
        self.redis = None
        self.file_storage_path = storage_path or settings.STORAGE_PATH
        self.history_limit = settings.SYNC_HISTORY_LIMIT

        # Create storage directory if it doesn't exist
        if not self.use_redis and not os.path.exists(self.file_storage_path):
            os.makedirs(self.file_storage_path)

    async def initialize(self):
        """Initialize storage connections"""
        if self.use_redis:
            try:
                self.redis = aioredis.from_url(
                    f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                    password=settings.REDIS_PASSWORD or None,
                    encoding="utf-8",
                    decode_responses=True
                )
                await self.redis.ping()
                logger.info("Redis connection established for sync storage")
            except Exception as e:
                logger.error(f"Failed to connect to Redis: {e}")
                self.use_redis = False
                self.redis = None
                os.makedirs(self.file_storage_path, exist_ok=True)
                logger.info("Falling back to file-based storage")

    async def close(self):
        """Close storage connections"""
        if self.use_redis and self.redis:
            await self.redis.aclose()

    # Key/value primitives

    def _file_path(self, key: str) -> str:
        return os.path.join(self.file_storage_path, key.replace(":", "_") + ".json")

    async def _get_json(self, key: str) -> Optional[Any]:
        if self.use_redis and self.redis:
            value = await self.redis.get(key)
            return json.loads(value) if value else None
        else:
            path = self._file_path(key)
            if os.path.exists(path):
                with open(path, "r") as f:
                    return json.load(f)
            return None

    async def _set_json(self, key: str, value: Any) -> None:
        if self.use_redis and self.redis:
            await self.redis.set(key, json.dumps(value, default=str))
        else:
            with open(self._file_path(key), "w") as f:
                json.dump(value, f, indent=2, default=str)

    async def _delete(self, key: str) -> None:
        if self.use_redis and self.redis:
            await self.redis.delete(key)
        else:
            path = self._file_path(key)
            if os.path.exists(path):
                os.remove(path)

    # Calendar connections

    async def get_connection(self, talent_id: str) -> Optional[CalendarConnection]:
        """Get the Google connection for a talent"""
        data = await self._get_json(f"calendar:connection:{talent_id}")
        return CalendarConnection.model_validate(data) if data else None

    async def save_connection(self, connection: CalendarConnection) -> None:
        """Create or update a talent's Google connection"""
        connection.updated_at = utcnow()
        await self._set_json(
            f"calendar:connection:{connection.talent_id}",
            connection.model_dump(mode="json")
        )

    async def delete_connection(self, talent_id: str) -> None:
        await self._delete(f"calendar:connection:{talent_id}")

    async def get_oauth_state(self, talent_id: str) -> Optional[Dict[str, Any]]:
        """Get the pending OAuth handshake for a talent"""
        return await self._get_json(f"calendar:oauth:{talent_id}")

    async def save_oauth_state(self, talent_id: str, state: Dict[str, Any]) -> None:
        await self._set_json(f"calendar:oauth:{talent_id}", state)

    async def delete_oauth_state(self, talent_id: str) -> None:
        await self._delete(f"calendar:oauth:{talent_id}")

    # Calendar events

    def _events_key(self, talent_id: Optional[str]) -> str:
        return f"calendar:events:{talent_id or UNASSIGNED}"

    async def _load_events(self, talent_id: Optional[str]) -> Dict[str, Dict[str, Any]]:
        return await self._get_json(self._events_key(talent_id)) or {}

    async def list_events(self, talent_id: Optional[str]) -> List[CalendarEvent]:
        """List all events of a talent ordered by start date"""
        events = [CalendarEvent.model_validate(e) for e in (await self._load_events(talent_id)).values()]
        return sorted(events, key=lambda e: (e.start_date, e.start_time or time.min))

    async def get_event(self, talent_id: Optional[str], event_id: str) -> Optional[CalendarEvent]:
        data = (await self._load_events(talent_id)).get(event_id)
        return CalendarEvent.model_validate(data) if data else None

    async def find_event_by_external_id(self, talent_id: Optional[str], gcal_event_id: str) -> Optional[CalendarEvent]:
        """Find the local event linked to a Google event id"""
        for data in (await self._load_events(talent_id)).values():
            if data.get("gcal_event_id") == gcal_event_id:
                return CalendarEvent.model_validate(data)
        return None

    async def save_event(self, event: CalendarEvent) -> CalendarEvent:
        """Store an event under its id, replacing any earlier version"""
        events = await self._load_events(event.talent_id)
        events[event.id] = event.model_dump(mode="json")
        await self._set_json(self._events_key(event.talent_id), events)
        return event

    async def upsert_event(self, event: CalendarEvent, touch: bool = False) -> CalendarEvent:
        """
        Insert or update an event on its idempotency key
        (talent, title, start_date, end_date).

        An existing row keeps its id and creation time. ``touch`` marks the
        write as a staff edit and bumps ``updated_at``.
        """
        events = await self._load_events(event.talent_id)
        for data in events.values():
            existing = CalendarEvent.model_validate(data)
            if existing.idempotency_key == event.idempotency_key:
                event = event.model_copy(update={
                    "id": existing.id,
                    "created_at": existing.created_at,
                    "gcal_event_id": event.gcal_event_id or existing.gcal_event_id,
                })
                if not touch:
                    event.updated_at = existing.updated_at
                break

        if touch:
            event.updated_at = utcnow()
        events[event.id] = event.model_dump(mode="json")
        await self._set_json(self._events_key(event.talent_id), events)
        return event

    # Pending conflicts

    async def get_pending_conflicts(self, talent_id: str) -> List[Dict[str, Any]]:
        return await self._get_json(f"calendar:conflicts:{talent_id}") or []

    async def save_pending_conflicts(self, talent_id: str, conflicts: List[Dict[str, Any]]) -> None:
        if conflicts:
            await self._set_json(f"calendar:conflicts:{talent_id}", conflicts)
        else:
            await self._delete(f"calendar:conflicts:{talent_id}")

    # Document access state

    async def get_document_access(self, talent_id: str) -> Optional[Dict[str, Any]]:
        return await self._get_json(f"documents:access:{talent_id}")

    async def save_document_access(self, talent_id: str, state: Dict[str, Any]) -> None:
        await self._set_json(f"documents:access:{talent_id}", state)

    # Sync history

    async def save_sync_result(self, talent_id: str, result: Dict[str, Any]) -> None:
        """Save the result of a sync operation for a talent"""
        timestamp = utcnow().strftime("%Y%m%d%H%M%S")
        entry = {"timestamp": timestamp, "result": result}

        if self.use_redis and self.redis:
            # Save latest result for this talent
            await self.redis.set(f"sync:talent:{talent_id}:latest_result", json.dumps(result, default=str))

            # Save to talent history with timestamp
            await self.redis.lpush(f"sync:talent:{talent_id}:history", json.dumps(entry, default=str))

            # Trim history
            await self.redis.ltrim(f"sync:talent:{talent_id}:history", 0, self.history_limit - 1)
        else:
            await self._set_json(f"sync:talent:{talent_id}:latest_result", result)

            history = await self._get_json(f"sync:talent:{talent_id}:history") or []
            history.insert(0, entry)
            await self._set_json(f"sync:talent:{talent_id}:history", history[:self.history_limit])

    async def get_latest_sync_result(self, talent_id: str) -> Optional[Dict[str, Any]]:
        """Get the latest sync result for a talent"""
        return await self._get_json(f"sync:talent:{talent_id}:latest_result")

    async def get_sync_history(self, talent_id: str) -> List[Dict[str, Any]]:
        if self.use_redis and self.redis:
            entries = await self.redis.lrange(f"sync:talent:{talent_id}:history", 0, -1)
            return [json.loads(e) for e in entries]
        return await self._get_json(f"sync:talent:{talent_id}:history") or []
