"""
Workflow Engine - The Brain of the System

Drives ticket instances through the ordered steps of their schema.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. TICKET LOCKS
   - TicketLockRegistry: per-ticket in-process serialization

2. TICKET CREATION
   - instantiate: bind operators and materialize one item per schema step

3. STEP PROCESSING
   - current_step: first unfinished flow item
   - process: validate and apply a form submission or review decision
   - reopen_previous_step: manager send-back of a halted ticket

4. FORM CONTEXT
   - build_form_context: dynamic default and blob lookups for the form engine
   - visible_fields_for_current_step: conditional visibility preview

=============================================================================
TRANSITIONS
=============================================================================

Every transition is computed on a deep copy of the ticket and committed
with one compare-and-swap on the ticket version. A failure anywhere before
the commit leaves the stored ticket untouched. Audit events are written
after the commit.

    Form submitted            -> item finished
    Review approved           -> item finished, halted cleared
    Review rejected, restart  -> every item reset, status Pending
    Review rejected           -> item stays current, ticket halted

After an item finishes the ticket is Finished when no item remains,
otherwise InProgress.
=============================================================================
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from ..config.settings import settings
from ..domain.models import (
    Ticket, TicketFlowItem, TicketSchema, SchemaFlowStep, FormDefinition,
    ReviewDefinition, FormSubmission, ReviewSubmission, EmptyFlowValue,
    FormFlowValue, ReviewFlowValue, DynamicDefaultRef, FieldDefinition
)
from ..domain.enums import TicketStatus, AuditEventType
from ..domain.errors import (
    AlreadyFinishedError, TicketHaltedError, InvalidSubmissionError,
    InvalidStateError, AssignmentValidationError, EngineError
)
from ..repositories.ticket_repo import TicketRepository
from ..repositories.schema_repo import SchemaRepository
from ..repositories.blob_repo import BlobRepository
from .permission_guard import PermissionGuard
from .assignment_resolver import AssignmentResolver
from .audit_writer import AuditWriter
from .form_engine import FormEngine, FormContext
from ..utils.idgen import generate_ticket_id, generate_flow_item_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Ticket Locks
# =============================================================================

class TicketLockRegistry:
    """
    One lock per ticket id, shared by every engine instance in the process

    Entries are reference counted and dropped once the last holder or
    waiter leaves, so finished tickets keep no lock behind.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    @contextmanager
    def hold(self, ticket_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(ticket_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[ticket_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


ticket_locks = TicketLockRegistry()


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for ticket transitions

    Responsibilities:
    - Create ticket instances from published schemas
    - Process only the current step, and only by its bound operator
    - Apply restart/halt semantics of review rejections
    - Commit each transition atomically and write the audit trail
    """

    def __init__(
        self,
        ticket_repo: Optional[TicketRepository] = None,
        schema_repo: Optional[SchemaRepository] = None,
        blob_repo: Optional[BlobRepository] = None,
        assignment_resolver: Optional[AssignmentResolver] = None,
        audit_writer: Optional[AuditWriter] = None
    ):
        self.ticket_repo = ticket_repo or TicketRepository()
        self.schema_repo = schema_repo or SchemaRepository()
        self.blob_repo = blob_repo or BlobRepository()
        self.assignment_resolver = assignment_resolver or AssignmentResolver()
        self.audit_writer = audit_writer or AuditWriter()
        self.permission_guard = PermissionGuard()
        self.form_engine = FormEngine()

    # =========================================================================
    # Ticket Creation
    # =========================================================================

    def instantiate(
        self,
        schema_id: str,
        requester_id: str,
        assign_flow_users: Optional[Dict[str, str]] = None,
        title: Optional[str] = None
    ) -> Ticket:
        """
        Create a new ticket from a published schema

        Algorithm:
        1. Load the schema (SchemaNotFoundError if missing)
        2. Bind every step's operator through the AssignmentResolver
        3. Materialize one unfinished item per step, status Pending
        """
        schema = self.schema_repo.get_schema_or_raise(schema_id)
        assign_flow_users = assign_flow_users or {}

        unknown = sorted(set(assign_flow_users) - {flow.flow_id for flow in schema.flows})
        if unknown:
            raise AssignmentValidationError(
                f"Unknown flow ids in assignment: {', '.join(unknown)}",
                details={"flow_ids": unknown}
            )

        now = utc_now()
        ticket_id = generate_ticket_id()
        items: List[TicketFlowItem] = []
        for flow in sorted(schema.flows, key=lambda f: f.order):
            user_id = self.assignment_resolver.bind(
                flow.operator,
                assign_flow_users.get(flow.flow_id),
                requester_id
            )
            items.append(TicketFlowItem(
                flow_item_id=generate_flow_item_id(),
                ticket_id=ticket_id,
                flow_id=flow.flow_id,
                order=flow.order,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            ))

        ticket = Ticket(
            ticket_id=ticket_id,
            schema_id=schema.schema_id,
            title=(title or "").strip() or schema.title_en or schema.title_zh or schema.schema_id,
            requester_id=requester_id,
            status=TicketStatus.PENDING,
            flows=items,
            created_at=now,
            updated_at=now,
        )

        ticket = self.ticket_repo.create_ticket(ticket)
        try:
            self.audit_writer.write_create_ticket(ticket.ticket_id, schema.schema_id, requester_id, ticket.title)
        except Exception as e:
            logger.error(
                f"Failed to write creation audit for ticket {ticket.ticket_id}: {e}",
                extra={"ticket_id": ticket.ticket_id, "schema_id": schema.schema_id}
            )

        logger.info(
            f"Instantiated ticket {ticket.ticket_id} from schema {schema.schema_id}",
            extra={"ticket_id": ticket.ticket_id, "schema_id": schema.schema_id, "actor_id": requester_id}
        )
        return ticket

    # =========================================================================
    # Step Processing
    # =========================================================================

    def current_step(self, ticket: Ticket) -> Optional[TicketFlowItem]:
        """First unfinished item, or None when the ticket is finished"""
        return ticket.current_item()

    def _schema_step(self, schema: TicketSchema, item: TicketFlowItem) -> SchemaFlowStep:
        flow = schema.get_flow(item.flow_id)
        if flow is None:
            raise EngineError(
                f"Schema {schema.schema_id} has no step {item.flow_id}",
                details={"ticket_id": item.ticket_id, "flow_id": item.flow_id}
            )
        return flow

    def process(
        self,
        ticket_id: str,
        actor_id: str,
        submission: FormSubmission | ReviewSubmission,
        idempotency_key: Optional[str] = None
    ) -> Ticket:
        """
        Apply a submission to the ticket's current step

        Raises:
            AlreadyFinishedError: no unfinished step remains
            TicketHaltedError: halted ticket received something other than a review
            AuthorizationError: actor is not the step's bound operator
            InvalidSubmissionError: submission type differs from the step module
            FieldErrors: form answers failed validation
            ConcurrencyError: the ticket changed underneath us
        """
        with ticket_locks.hold(ticket_id):
            ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)

            if idempotency_key and idempotency_key in ticket.applied_keys:
                logger.info(
                    f"Replayed idempotency key {idempotency_key}",
                    extra={"ticket_id": ticket_id, "actor_id": actor_id}
                )
                return ticket

            current = self.current_step(ticket)
            if current is None:
                raise AlreadyFinishedError(
                    f"Ticket {ticket_id} is already finished",
                    details={"ticket_id": ticket_id}
                )

            if ticket.halted and not isinstance(submission, ReviewSubmission):
                raise TicketHaltedError(
                    f"Ticket {ticket_id} is halted awaiting a review decision",
                    details={"ticket_id": ticket_id, "flow_item_id": current.flow_item_id}
                )

            self.permission_guard.assert_can_process(actor_id, ticket, current)

            schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
            flow = self._schema_step(schema, current)

            if flow.module.type != submission.type:
                raise InvalidSubmissionError(
                    f"Step {flow.flow_id} expects a {flow.module.type} submission",
                    details={"expected": flow.module.type, "received": submission.type}
                )

            updated = ticket.model_copy(deep=True)
            item = self.current_step(updated)
            now = utc_now()

            if isinstance(flow.module, FormDefinition):
                context = self.build_form_context(ticket, schema, actor_id)
                answers = self.form_engine.validate_submission(flow.module, submission.value, context)
                item.value = FormFlowValue(value=answers, submitted_by=actor_id, submitted_at=now)
                item.finished = True
                outcome = AuditEventType.SUBMIT_FORM
            else:
                outcome = self._apply_review(updated, item, flow.module, submission, actor_id, now)

            item.updated_at = now
            if item.finished:
                self._advance(updated, now)

            if idempotency_key:
                keep = max(settings.idempotency_keys_retained, 1)
                updated.applied_keys = (updated.applied_keys + [idempotency_key])[-keep:]
            updated.updated_at = now

            saved = self.ticket_repo.replace_ticket(updated, expected_version=ticket.version)

        try:
            self._write_process_audit(saved, current, actor_id, outcome, submission)
        except Exception as e:
            # Transition is committed; log but don't fail the call
            logger.error(
                f"Failed to write audit for ticket {ticket_id}: {e}",
                extra={"ticket_id": ticket_id, "flow_id": current.flow_id, "action": outcome.value}
            )
        logger.info(
            f"Processed step {current.flow_id} of ticket {ticket_id}: {outcome.value}",
            extra={
                "ticket_id": ticket_id,
                "flow_id": current.flow_id,
                "actor_id": actor_id,
                "action": outcome.value,
                "status": saved.status,
            }
        )
        return saved

    def _apply_review(
        self,
        ticket: Ticket,
        item: TicketFlowItem,
        review: ReviewDefinition,
        submission: ReviewSubmission,
        actor_id: str,
        now
    ) -> AuditEventType:
        decision = ReviewFlowValue(
            approved=submission.approved,
            comment=submission.comment,
            submitted_by=actor_id,
            submitted_at=now,
        )
        item.value = decision
        item.review_history.append(decision)

        if submission.approved:
            item.finished = True
            ticket.halted = False
            return AuditEventType.APPROVE

        if review.restarted:
            for flow_item in ticket.flows:
                flow_item.finished = False
                flow_item.value = EmptyFlowValue()
                flow_item.updated_at = now
            ticket.status = TicketStatus.PENDING
            ticket.halted = False
            ticket.restart_count += 1
            return AuditEventType.RESTART

        ticket.halted = True
        ticket.status = TicketStatus.IN_PROGRESS
        return AuditEventType.HALT

    def _advance(self, ticket: Ticket, now) -> None:
        if self.current_step(ticket) is None:
            ticket.status = TicketStatus.FINISHED
            ticket.finished = True
            ticket.finished_at = now
        else:
            ticket.status = TicketStatus.IN_PROGRESS

    def _write_process_audit(
        self,
        ticket: Ticket,
        item: TicketFlowItem,
        actor_id: str,
        outcome: AuditEventType,
        submission: FormSubmission | ReviewSubmission
    ) -> None:
        if outcome == AuditEventType.SUBMIT_FORM:
            stored = next(i for i in ticket.flows if i.flow_item_id == item.flow_item_id)
            keys = sorted(stored.value.value) if isinstance(stored.value, FormFlowValue) else []
            self.audit_writer.write_submit_form(ticket.ticket_id, item.flow_item_id, actor_id, keys)
        else:
            self.audit_writer.write_review(
                ticket.ticket_id, item.flow_item_id, actor_id,
                submission.approved, submission.comment, outcome
            )

        if ticket.finished:
            self.audit_writer.write_ticket_finished(ticket.ticket_id, actor_id)

    def reopen_previous_step(self, ticket_id: str, actor_id: str) -> Ticket:
        """
        Send a halted ticket back to the step before the rejected review

        The previous item becomes current again with its answers kept as
        pre-fill. Only schema managers may do this.
        """
        with ticket_locks.hold(ticket_id):
            ticket = self.ticket_repo.get_ticket_or_raise(ticket_id)
            schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
            self.permission_guard.assert_manager(actor_id, schema)

            if not ticket.halted:
                raise InvalidStateError(
                    f"Ticket {ticket_id} is not halted",
                    details={"ticket_id": ticket_id}
                )

            updated = ticket.model_copy(deep=True)
            current = self.current_step(updated)
            position = updated.flows.index(current)
            if position == 0:
                raise InvalidStateError(
                    f"Ticket {ticket_id} has no step before the rejected review",
                    details={"ticket_id": ticket_id}
                )

            now = utc_now()
            previous = updated.flows[position - 1]
            previous.finished = False
            previous.updated_at = now
            updated.halted = False
            updated.status = TicketStatus.IN_PROGRESS
            updated.updated_at = now

            saved = self.ticket_repo.replace_ticket(updated, expected_version=ticket.version)

        try:
            self.audit_writer.write_reopen(ticket_id, previous.flow_item_id, actor_id)
        except Exception as e:
            logger.error(
                f"Failed to write reopen audit for ticket {ticket_id}: {e}",
                extra={"ticket_id": ticket_id, "flow_id": previous.flow_id, "action": "reopen"}
            )
        logger.info(
            f"Reopened step {previous.flow_id} of ticket {ticket_id}",
            extra={"ticket_id": ticket_id, "flow_id": previous.flow_id, "actor_id": actor_id, "action": "reopen"}
        )
        return saved

    # =========================================================================
    # Form Context
    # =========================================================================

    def build_form_context(self, ticket: Ticket, schema: TicketSchema, actor_id: str) -> FormContext:
        """
        Context for dynamic defaults and blob checks

        A Dynamic default resolves first to an answer stored in this ticket,
        then to the actor's most recent answer in any other ticket.
        """

        def lookup(ref: DynamicDefaultRef) -> Any:
            local_flow_ids = [
                flow.flow_id for flow in schema.flows
                if isinstance(flow.module, FormDefinition) and flow.module.form_id == ref.form_id
                and (ref.flow_id is None or flow.flow_id == ref.flow_id)
            ]
            for item in ticket.flows:
                if item.flow_id in local_flow_ids and isinstance(item.value, FormFlowValue):
                    if ref.field_key in item.value.value:
                        return item.value.value[ref.field_key]

            flow_ids = local_flow_ids
            if not flow_ids:
                owner = self.schema_repo.find_form(ref.form_id)
                if owner is not None and (ref.flow_id is None or owner[1].flow_id == ref.flow_id):
                    flow_ids = [owner[1].flow_id]

            latest = self.ticket_repo.find_latest_form_value(
                flow_ids, actor_id, exclude_ticket_id=ticket.ticket_id
            )
            if latest is not None:
                return latest.value.get(ref.field_key)
            return None

        return FormContext(answer_lookup=lookup, blob_lookup=self.blob_repo.get_blob)

    def visible_fields_for_current_step(
        self,
        ticket: Ticket,
        actor_id: str,
        answers: Dict[str, Any]
    ) -> List[FieldDefinition]:
        """Visible fields of the current form step for a draft of answers"""
        current = self.current_step(ticket)
        if current is None:
            raise AlreadyFinishedError(
                f"Ticket {ticket.ticket_id} is already finished",
                details={"ticket_id": ticket.ticket_id}
            )

        schema = self.schema_repo.get_schema_or_raise(ticket.schema_id)
        flow = self._schema_step(schema, current)
        if not isinstance(flow.module, FormDefinition):
            return []

        context = self.build_form_context(ticket, schema, actor_id)
        return self.form_engine.visible_fields(flow.module, answers, context)
