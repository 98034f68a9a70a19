"""
Ticket Schemas

Request and response models for ticket API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ....domain.models import FlowSubmission


# =============================================================================
# Ticket CRUD Schemas
# =============================================================================

class CreateTicketRequest(BaseModel):
    """Request to create a new ticket"""
    schema_id: str
    title: Optional[str] = Field(None, max_length=500)
    assign_flow_users: Dict[str, str] = Field(
        default_factory=dict,
        description="Explicit assignee per flow id; must be eligible for the step operator"
    )


class TicketSummary(BaseModel):
    """One row of a ticket list"""
    ticket_id: str
    schema_id: str
    title: str
    requester_id: str
    status: str
    viewer_status: str = Field(..., description="Pending when the ticket waits on the viewer")
    halted: bool
    restart_count: int
    current_flow_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    """Response for ticket list"""
    items: List[TicketSummary]
    page: int
    page_size: int


# =============================================================================
# Action Schemas
# =============================================================================

class ProcessTicketRequest(BaseModel):
    """Submission for the current step: {"flow": {"type": "Form"|"Review", ...}}"""
    flow: FlowSubmission


class VisibleFieldsRequest(BaseModel):
    """Draft answers used to evaluate conditional blocks"""
    answers: Dict[str, Any] = Field(default_factory=dict)
