"""
Ticket Routes Module

- crud.py: Create, list, get tickets
- actions.py: Process the current step, preview visible fields, reopen

All routes are combined into a single router for inclusion in the API.
"""

from fastapi import APIRouter

from .schemas import (
    CreateTicketRequest, TicketSummary, TicketListResponse,
    ProcessTicketRequest, VisibleFieldsRequest
)
from .crud import router as crud_router
from .actions import router as actions_router

router = APIRouter()
router.include_router(crud_router)
router.include_router(actions_router)

__all__ = [
    "router",
    "CreateTicketRequest", "TicketSummary", "TicketListResponse",
    "ProcessTicketRequest", "VisibleFieldsRequest",
]
