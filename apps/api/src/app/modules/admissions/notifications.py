"""
Notification Emitter

Every lifecycle transition is recorded as an AuditEvent row and then
broadcast to live subscribers (e.g. a registrar dashboard).

The audit row is staged in the caller's transaction and is the only durable
guarantee. Broadcast happens after commit as background tasks: a slow or
failing publisher never blocks or fails the transition that produced the
event.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import redis as redis_module
from app.core.auth import Actor
from app.modules.admissions import repository
from app.modules.admissions.models import AuditEvent, AuditEventType

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    """A live-broadcast transport. Publish-only."""

    async def publish(self, payload: dict[str, Any]) -> None: ...


def event_payload(event: AuditEvent) -> dict[str, Any]:
    """JSON-safe representation of an audit event."""
    return {
        "id": event.id,
        "type": event.event_type.value,
        "message": event.message,
        "applicant_number": event.applicant_number,
        "actor": {"name": event.actor_name, "email": event.actor_email},
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


class RedisEventPublisher:
    """Publishes events as JSON on a Redis pub/sub channel."""

    def __init__(self, channel: str, client: Redis | None = None):
        self.channel = channel
        self._client = client

    async def publish(self, payload: dict[str, Any]) -> None:
        client = self._client or redis_module.redis_client
        if client is None:
            logger.debug(f"Redis unavailable, dropping live event for channel {self.channel}")
            return
        await client.publish(self.channel, json.dumps(payload))


class NotificationEmitter:
    """Stages audit events and fans them out to registered publishers."""

    def __init__(self) -> None:
        self._publishers: list[EventPublisher] = []
        # Strong references so in-flight deliveries are not garbage collected
        self._pending: set[asyncio.Task] = set()

    @property
    def publishers(self) -> list[EventPublisher]:
        return list(self._publishers)

    def add_publisher(self, publisher: EventPublisher) -> None:
        self._publishers.append(publisher)

    def clear_publishers(self) -> None:
        self._publishers.clear()

    def stage(
        self,
        db: AsyncSession,
        event_type: AuditEventType,
        message: str,
        applicant_number: str | None,
        actor: Actor,
    ) -> AuditEvent:
        """Add an audit event to the caller's transaction."""
        event = AuditEvent(
            event_type=event_type,
            message=message,
            applicant_number=applicant_number,
            actor_name=actor.name,
            actor_email=actor.email,
        )
        return repository.add_audit_event(db, event)

    def publish(self, event: AuditEvent) -> None:
        """Schedule delivery of a committed event to every publisher."""
        if not self._publishers:
            return

        payload = event_payload(event)
        for publisher in self._publishers:
            task = asyncio.create_task(self._deliver(publisher, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def emit(
        self,
        db: AsyncSession,
        event_type: AuditEventType,
        message: str,
        applicant_number: str | None,
        actor: Actor,
    ) -> AuditEvent:
        """Stage, commit and publish an event in one call."""
        event = self.stage(db, event_type, message, applicant_number, actor)
        await db.commit()
        self.publish(event)
        return event

    async def drain(self) -> None:
        """Wait for in-flight deliveries. Used on shutdown."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _deliver(self, publisher: EventPublisher, payload: dict[str, Any]) -> None:
        try:
            await publisher.publish(payload)
        except Exception as e:
            logger.warning(
                f"Live event delivery failed via {type(publisher).__name__} "
                f"for {payload.get('applicant_number')}: {e}"
            )


emitter = NotificationEmitter()
