"""
Ticket CRUD Routes

Create, read, list ticket endpoints.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...deps import get_actor_id_dep, get_correlation_id_dep
from ....config.settings import settings
from ....domain.models import Ticket, AuditEvent
from ....domain.enums import TicketStatus
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import CreateTicketRequest, TicketListResponse

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    request: CreateTicketRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Create a new ticket

    Every schema step is bound to a user up front; assign_flow_users may
    pick a specific member for role-operated steps.
    """
    try:
        service = TicketService()
        ticket = service.create_ticket(
            schema_id=request.schema_id,
            actor_id=actor_id,
            title=request.title,
            assign_flow_users=request.assign_flow_users
        )

        logger.info(
            f"Created ticket: {ticket.ticket_id}",
            extra={"ticket_id": ticket.ticket_id, "actor_id": actor_id}
        )
        return ticket

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/", response_model=TicketListResponse)
async def list_tickets(
    status: Optional[TicketStatus] = Query(None, description="Filter by status as seen by the caller"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.max_page_size),
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    List tickets the caller requested or is bound to

    Status is per viewer: a ticket waiting on the caller is Pending,
    one waiting on someone else is InProgress.
    """
    try:
        service = TicketService()
        skip = (page - 1) * page_size
        items = service.list_tickets_for_user(actor_id, status=status, skip=skip, limit=page_size)
        return TicketListResponse(items=items, page=page, page_size=page_size)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get ticket detail with schema, per-step status and current step"""
    try:
        service = TicketService()
        return service.get_ticket_detail(ticket_id, actor_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{ticket_id}/audit", response_model=List[AuditEvent])
async def get_ticket_audit(
    ticket_id: str,
    since: Optional[str] = Query(None, description="ISO-8601 instant; older events are skipped"),
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Audit trail of a ticket, newest first"""
    try:
        service = TicketService()
        return service.get_audit_trail(ticket_id, actor_id, since=since)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
