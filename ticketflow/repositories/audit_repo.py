"""Audit Repository - Append-only store of ticket and schema events"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING

from .mongo_client import get_collection
from ..domain.models import AuditEvent
from ..domain.enums import AuditEventType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Events are inserted once and never updated"""

    def __init__(self):
        self._events: Collection = get_collection("audit_events")

    def create_event(self, event: AuditEvent) -> AuditEvent:
        # Native datetimes so timestamp sorts chronologically
        doc = event.model_dump()
        doc["_id"] = event.audit_event_id
        self._events.insert_one(doc)

        logger.debug(
            f"Audit {event.event_type} by {event.actor_id}",
            extra={"ticket_id": event.ticket_id, "schema_id": event.schema_id, "actor_id": event.actor_id}
        )
        return event

    def get_events_for_ticket(
        self,
        ticket_id: str,
        event_types: Optional[List[AuditEventType]] = None,
        limit: int = 200
    ) -> List[AuditEvent]:
        """Events of one ticket, newest first"""
        query: Dict[str, Any] = {"ticket_id": ticket_id}
        if event_types:
            query["event_type"] = {"$in": [AuditEventType(t).value for t in event_types]}

        cursor = self._events.find(query, {"_id": 0}).sort("timestamp", DESCENDING).limit(limit)
        return [AuditEvent.model_validate(doc) for doc in cursor]
