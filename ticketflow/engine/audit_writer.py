"""Audit Writer - Append-only audit events"""
from typing import Any, Dict, Optional

from ..domain.models import AuditEvent
from ..domain.enums import AuditEventType
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_event_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit events (append-only)

    All state changes produce audit events, written after the state change
    has been committed.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_event(
        self,
        event_type: AuditEventType,
        actor_id: str,
        ticket_id: Optional[str] = None,
        schema_id: Optional[str] = None,
        flow_item_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        """Write a single audit event"""
        event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            event_type=event_type,
            actor_id=actor_id,
            schema_id=schema_id,
            ticket_id=ticket_id,
            flow_item_id=flow_item_id,
            details=details or {},
            timestamp=utc_now(),
            correlation_id=correlation_id or get_correlation_id()
        )

        return self.repo.create_event(event)

    def write_publish_schema(self, schema_id: str, actor_id: str, flow_count: int) -> AuditEvent:
        """Write schema publication event"""
        return self.write_event(
            event_type=AuditEventType.PUBLISH_SCHEMA,
            actor_id=actor_id,
            schema_id=schema_id,
            details={"flow_count": flow_count}
        )

    def write_create_ticket(self, ticket_id: str, schema_id: str, actor_id: str, title: str) -> AuditEvent:
        """Write ticket creation event"""
        return self.write_event(
            event_type=AuditEventType.CREATE_TICKET,
            actor_id=actor_id,
            ticket_id=ticket_id,
            schema_id=schema_id,
            details={"title": title}
        )

    def write_submit_form(
        self,
        ticket_id: str,
        flow_item_id: str,
        actor_id: str,
        field_keys: list
    ) -> AuditEvent:
        """Write form submission event"""
        return self.write_event(
            event_type=AuditEventType.SUBMIT_FORM,
            actor_id=actor_id,
            ticket_id=ticket_id,
            flow_item_id=flow_item_id,
            details={"field_keys": field_keys}
        )

    def write_review(
        self,
        ticket_id: str,
        flow_item_id: str,
        actor_id: str,
        approved: bool,
        comment: Optional[str],
        outcome: AuditEventType
    ) -> AuditEvent:
        """Write review decision event (APPROVE, RESTART or HALT)"""
        return self.write_event(
            event_type=outcome,
            actor_id=actor_id,
            ticket_id=ticket_id,
            flow_item_id=flow_item_id,
            details={"approved": approved, "comment": comment}
        )

    def write_reopen(self, ticket_id: str, flow_item_id: str, actor_id: str) -> AuditEvent:
        """Write manager send-back event"""
        return self.write_event(
            event_type=AuditEventType.REOPEN,
            actor_id=actor_id,
            ticket_id=ticket_id,
            flow_item_id=flow_item_id
        )

    def write_ticket_finished(self, ticket_id: str, actor_id: str) -> AuditEvent:
        """Write terminal event"""
        return self.write_event(
            event_type=AuditEventType.TICKET_FINISHED,
            actor_id=actor_id,
            ticket_id=ticket_id
        )
