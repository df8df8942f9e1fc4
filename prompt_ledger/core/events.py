"""NATS broadcast of committed audit events.

Consumers outside this service (websocket fan-out, agent dispatch)
subscribe to ``ledger.<entity_type>.<action_type>``. Publishing is
best-effort and never affects the outcome of the mutation that produced the
event.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import nats as nats_lib
import structlog

logger = structlog.get_logger()


class EventPublisher:
    """Publishes audit events to NATS."""

    def __init__(self, nats_url: str = "nats://localhost:4222") -> None:
        self.nats_url = nats_url
        self._nc = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Connect to NATS. Returns True if successful."""
        try:
            self._nc = await nats_lib.connect(self.nats_url)
            self._connected = True
            logger.info("events.nats_connected", url=self.nats_url)
            return True
        except Exception as e:
            logger.warning("events.nats_connect_failed", error=str(e))
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from NATS."""
        if self._nc and self._connected:
            try:
                await self._nc.close()
            except Exception as e:
                logger.warning("events.nats_close_failed", error=str(e))
            self._connected = False

    async def publish(
        self,
        event_type: str,
        subject: str,
        data: dict[str, Any],
        correlation_id: str | None = None,
        causation_id: str | None = None,
    ) -> bool:
        """Publish an envelope. Returns True if published, False if NATS unavailable."""
        if not self._connected or not self._nc:
            return False

        envelope = {
            "id": str(uuid4()),
            "type": event_type,
            "source": "promptledger",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": correlation_id or str(uuid4()),
            "causation_id": causation_id,
            "data": data,
        }

        try:
            await self._nc.publish(subject, json.dumps(envelope, default=str).encode())
            logger.debug("events.published", subject=subject, type=event_type)
            return True
        except Exception as e:
            logger.warning("events.publish_failed", subject=subject, error=str(e))
            return False

    async def publish_audit_event(self, event: dict[str, Any]) -> bool:
        """Publish a committed audit event row."""
        entity_type = event["entity_type"]
        action = event["action_type"]
        return await self.publish(
            event_type=f"{entity_type}.{action}",
            subject=f"ledger.{entity_type}.{action}",
            data=event,
            causation_id=event.get("metadata", {}).get("restored_from_event"),
        )


# Process-wide publisher; created and torn down by the application lifespan
_publisher: EventPublisher | None = None


async def init_event_publisher(nats_url: str) -> EventPublisher:
    """Create the process-wide publisher and try to connect it."""
    global _publisher
    _publisher = EventPublisher(nats_url)
    await _publisher.connect()
    return _publisher


async def shutdown_event_publisher() -> None:
    """Disconnect and drop the process-wide publisher."""
    global _publisher
    if _publisher is not None:
        await _publisher.disconnect()
        _publisher = None


def get_event_publisher() -> EventPublisher | None:
    """The process-wide publisher, or None outside the application lifespan."""
    return _publisher


def publish_event_sync(event: dict[str, Any]) -> None:
    """Fire-and-forget publish from sync code running on the event loop thread."""
    publisher = _publisher
    if publisher is None or not publisher.connected:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("events.no_running_loop", event_id=event.get("id"))
        return
    loop.create_task(publisher.publish_audit_event(event))
