"""Ticket Service - Business logic for ticket operations"""
from typing import Any, Dict, List, Optional

from ..domain.models import (
    Ticket, TicketSchema, FieldDefinition, FormSubmission, ReviewSubmission, AuditEvent
)
from ..domain.enums import TicketStatus
from ..domain.errors import NotFoundError, ValidationError
from ..engine.engine import WorkflowEngine
from ..engine.permission_guard import PermissionGuard
from ..engine.assignment_resolver import AssignmentResolver
from ..repositories.ticket_repo import TicketRepository
from ..repositories.schema_repo import SchemaRepository
from ..repositories.audit_repo import AuditRepository
from ..utils.time import parse_iso, ensure_utc
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TicketService:
    """Service for ticket operations"""

    def __init__(self):
        self.ticket_repo = TicketRepository()
        self.schema_repo = SchemaRepository()
        self.assignment_resolver = AssignmentResolver()
        self.engine = WorkflowEngine(
            ticket_repo=self.ticket_repo,
            schema_repo=self.schema_repo,
            assignment_resolver=self.assignment_resolver
        )
        self.permission_guard = PermissionGuard()
        self.audit_repo = AuditRepository()

    # =========================================================================
    # Commands
    # =========================================================================

    def create_ticket(
        self,
        schema_id: str,
        actor_id: str,
        title: Optional[str] = None,
        assign_flow_users: Optional[Dict[str, str]] = None
    ) -> Ticket:
        """Instantiate a ticket from a published schema"""
        return self.engine.instantiate(schema_id, actor_id, assign_flow_users or {}, title)

    def process(
        self,
        ticket_id: str,
        actor_id: str,
        submission: FormSubmission | ReviewSubmission,
        idempotency_key: Optional[str] = None
    ) -> Ticket:
        """Process the current step"""
        return self.engine.process(ticket_id, actor_id, submission, idempotency_key)

    def reopen_previous_step(self, ticket_id: str, actor_id: str) -> Ticket:
        """Manager send-back of a halted ticket"""
        return self.engine.reopen_previous_step(ticket_id, actor_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_ticket(self, ticket_id: str) -> Ticket:
        return self.ticket_repo.get_ticket_or_raise(ticket_id)

    def viewer_status(self, ticket: Ticket, user_id: str) -> TicketStatus:
        """
        Status as seen by one user

        Finished tickets are Finished; a ticket waiting on the viewer is
        Pending to them; anything else is InProgress.
        """
        if ticket.finished:
            return TicketStatus.FINISHED
        current = self.engine.current_step(ticket)
        if current is not None and self.permission_guard.expected_actor(ticket, current) == user_id:
            return TicketStatus.PENDING
        return TicketStatus.IN_PROGRESS

    def _summary(self, ticket: Ticket, user_id: str) -> Dict[str, Any]:
        current = self.engine.current_step(ticket)
        return {
            "ticket_id": ticket.ticket_id,
            "schema_id": ticket.schema_id,
            "title": ticket.title,
            "requester_id": ticket.requester_id,
            "status": ticket.status,
            "viewer_status": self.viewer_status(ticket, user_id).value,
            "halted": ticket.halted,
            "restart_count": ticket.restart_count,
            "current_flow_id": current.flow_id if current else None,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
        }

    def list_tickets_for_user(
        self,
        user_id: str,
        status: Optional[TicketStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        """Tickets the user requested or is bound to, with per-viewer status"""
        tickets = self.ticket_repo.list_tickets_for_user(user_id, skip=0, limit=0)
        summaries = [self._summary(ticket, user_id) for ticket in tickets]
        if status is not None:
            summaries = [s for s in summaries if s["viewer_status"] == TicketStatus(status).value]
        return summaries[skip:skip + limit]

    def list_tickets_for_schema(
        self,
        schema_id: str,
        actor_id: str,
        skip: int = 0,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        """All tickets of a schema (schema managers only)"""
        schema = self.schema_repo.get_schema_or_raise(schema_id)
        self.permission_guard.assert_manager(actor_id, schema)
        tickets = self.ticket_repo.list_tickets_for_schema(schema_id, skip=skip, limit=limit)
        return [self._summary(ticket, actor_id) for ticket in tickets]

    def _operator_user_ids(self, schema: TicketSchema, flow_id: str) -> List[str]:
        flow = schema.get_flow(flow_id)
        try:
            return [user.user_id for user in self.assignment_resolver.resolve(flow.operator)]
        except NotFoundError:
            return []

    def get_ticket_detail(self, ticket_id: str, actor_id: str) -> Dict[str, Any]:
        """Ticket, schema, per-step status and the current step"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
        self.permission_guard.assert_can_view(actor_id, ticket, schema)

        current = self.engine.current_step(ticket)
        steps = []
        for item in ticket.flows:
            steps.append({
                "flow": schema.get_flow(item.flow_id),
                "item": item,
                "operator_user_ids": self._operator_user_ids(schema, item.flow_id),
                "is_current": current is not None and item.flow_item_id == current.flow_item_id,
            })

        return {
            "ticket": ticket,
            "schema": schema,
            "viewer_status": self.viewer_status(ticket, actor_id).value,
            "steps": steps,
            "current_step": current,
            "can_process": current is not None and self.permission_guard.can_process(actor_id, ticket, current),
            "is_manager": schema.is_manager(actor_id),
        }

    def preview_visible_fields(
        self,
        ticket_id: str,
        actor_id: str,
        answers: Dict[str, Any]
    ) -> List[FieldDefinition]:
        """Visible fields of the current step for a draft of answers"""
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
        self.permission_guard.assert_can_view(actor_id, ticket, schema)
        return self.engine.visible_fields_for_current_step(ticket, actor_id, answers)

    def get_audit_trail(
        self,
        ticket_id: str,
        actor_id: str,
        since: Optional[str] = None
    ) -> List[AuditEvent]:
        """
        Audit events of a ticket, newest first

        Args:
            since: ISO-8601 instant; older events are left out
        """
        ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
        schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
        self.permission_guard.assert_can_view(actor_id, ticket, schema)

        events = self.audit_repo.get_events_for_ticket(ticket_id)
        if since:
            try:
                cutoff = parse_iso(since)
            except ValueError:
                raise ValidationError(
                    f"since is not an ISO-8601 timestamp: {since}",
                    details={"since": since}
                )
            events = [event for event in events if ensure_utc(event.timestamp) >= cutoff]
        return events
