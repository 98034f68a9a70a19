"""Permission Guard - Authorization enforcement for ticket actions"""
from ..domain.models import Ticket, TicketFlowItem, TicketSchema
from ..domain.errors import AuthorizationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for ticket operations

    Rules:
    - Only the bound operator may process a step
    - A step with no bound operator is processed by the requester
    - Schema managers may view every ticket of the schema and reopen steps
    - Requesters and bound operators may view their tickets
    """

    def expected_actor(self, ticket: Ticket, item: TicketFlowItem) -> str:
        """User who is allowed to process the item"""
        return item.user_id if item.user_id is not None else ticket.requester_id

    def can_process(self, actor_id: str, ticket: Ticket, item: TicketFlowItem) -> bool:
        return actor_id == self.expected_actor(ticket, item)

    def assert_can_process(self, actor_id: str, ticket: Ticket, item: TicketFlowItem) -> None:
        if not self.can_process(actor_id, ticket, item):
            logger.warning(
                f"Actor {actor_id} may not process step {item.flow_id}",
                extra={"ticket_id": ticket.ticket_id, "actor_id": actor_id, "flow_id": item.flow_id}
            )
            raise AuthorizationError(
                "You are not the operator of the current step",
                details={"ticket_id": ticket.ticket_id, "flow_item_id": item.flow_item_id}
            )

    def is_manager(self, actor_id: str, schema: TicketSchema) -> bool:
        return schema.is_manager(actor_id)

    def assert_manager(self, actor_id: str, schema: TicketSchema) -> None:
        if not self.is_manager(actor_id, schema):
            raise AuthorizationError(
                "Only schema managers may perform this action",
                details={"schema_id": schema.schema_id}
            )

    def can_view_ticket(self, actor_id: str, ticket: Ticket, schema: TicketSchema) -> bool:
        if actor_id == ticket.requester_id or self.is_manager(actor_id, schema):
            return True
        return any(item.user_id == actor_id for item in ticket.flows)

    def assert_can_view(self, actor_id: str, ticket: Ticket, schema: TicketSchema) -> None:
        if not self.can_view_ticket(actor_id, ticket, schema):
            raise AuthorizationError(
                "You are not allowed to view this ticket",
                details={"ticket_id": ticket.ticket_id}
            )
