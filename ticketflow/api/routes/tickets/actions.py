"""
Ticket Action Routes

Processing the current step, previewing visibility and manager send-back.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from ...deps import get_actor_id_dep, get_correlation_id_dep, get_idempotency_key_dep
from ....domain.models import Ticket
from ....domain.errors import DomainError
from ....services.ticket_service import TicketService
from ....utils.logger import get_logger
from .schemas import ProcessTicketRequest, VisibleFieldsRequest

logger = get_logger(__name__)
router = APIRouter()


@router.post("/{ticket_id}/process", response_model=Ticket)
async def process_ticket(
    ticket_id: str,
    request: ProcessTicketRequest,
    actor_id: str = Depends(get_actor_id_dep),
    idempotency_key: Optional[str] = Depends(get_idempotency_key_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Submit a form or a review decision for the ticket's current step

    A repeated Idempotency-Key returns the ticket unchanged.
    """
    try:
        service = TicketService()
        return service.process(ticket_id, actor_id, request.flow, idempotency_key)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_id}/visible-fields")
async def preview_visible_fields(
    ticket_id: str,
    request: VisibleFieldsRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Fields of the current form step that are visible for the given answers"""
    try:
        service = TicketService()
        fields = service.preview_visible_fields(ticket_id, actor_id, request.answers)
        return {"ticket_id": ticket_id, "fields": fields}

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/{ticket_id}/reopen", response_model=Ticket)
async def reopen_previous_step(
    ticket_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Send a halted ticket back to the step before the rejected review (managers)"""
    try:
        service = TicketService()
        return service.reopen_previous_step(ticket_id, actor_id)

    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
