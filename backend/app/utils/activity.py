"""Change events for the notification sink.

Usage:
    record_change(
        db, action="graded", entity_type="item", entity_id=item.id,
        old_value={"status": "created"}, new_value={"status": "graded", "sort": "1"},
        actor_id=user_id,
    )

Events are kept on the session (session.info) until the enclosing
transaction commits; get_db() then hands them to the sink.  A rolled back
transaction discards them, so the sink only ever sees committed changes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_OUTBOX_KEY = "pending_changes"


@dataclass
class ChangeEvent:
    action: str
    entity_type: str
    entity_id: str | None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    actor_id: str | None = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return f"{self.entity_type}.{self.action}"

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["event"] = self.name
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


def record_change(
    db: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None,
    old_value: dict | None = None,
    new_value: dict | None = None,
    actor_id: str | None = None,
) -> ChangeEvent:
    """Queue a change event on the current transaction."""
    event = ChangeEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=old_value,
        new_value=new_value,
        actor_id=actor_id,
    )
    db.info.setdefault(_OUTBOX_KEY, []).append(event)
    return event


def pending_changes(db: AsyncSession) -> list[ChangeEvent]:
    return list(db.info.get(_OUTBOX_KEY, []))


def discard_changes(db: AsyncSession) -> None:
    dropped = db.info.pop(_OUTBOX_KEY, [])
    if dropped:
        logger.debug("Discarded %d change event(s) after rollback", len(dropped))


async def publish_changes(db: AsyncSession, sink=None) -> int:
    """Hand committed change events to the sink.  Call only after commit."""
    events = db.info.pop(_OUTBOX_KEY, [])
    if not events:
        return 0
    if sink is None:
        from app.services.notifications import get_sink  # deferred to avoid circular
        sink = get_sink()
    await sink.publish(events)
    return len(events)
