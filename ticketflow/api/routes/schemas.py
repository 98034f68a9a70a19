"""Schema API Routes - Publication and catalog endpoints"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel

from ..deps import get_actor_id_dep, get_correlation_id_dep
from ...config.settings import settings
from ...domain.models import SchemaDraft, TicketSchema, User
from ...domain.errors import DomainError
from ...services.schema_service import SchemaService
from ...services.ticket_service import TicketService
from ...utils.logger import get_logger
from .tickets.schemas import TicketListResponse

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================

class SchemaListResponse(BaseModel):
    """Paginated schema list"""
    items: List[TicketSchema]
    page: int
    page_size: int
    total: int


# ============================================================================
# Routes
# ============================================================================

@router.post("/", response_model=TicketSchema, status_code=status.HTTP_201_CREATED)
async def publish_schema(
    draft: SchemaDraft,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Publish a schema

    The draft is validated as a whole; every problem is reported in one
    SCHEMA_VALIDATION_ERROR. Published schemas are immutable.
    """
    try:
        service = SchemaService()
        return service.publish(draft, actor_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/", response_model=SchemaListResponse)
async def list_schemas(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.max_page_size),
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List published schemas, newest first"""
    try:
        service = SchemaService()
        skip = (page - 1) * page_size
        items = service.list_schemas(skip=skip, limit=page_size)
        return SchemaListResponse(
            items=items,
            page=page,
            page_size=page_size,
            total=service.count_schemas()
        )
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/available", response_model=List[TicketSchema])
async def list_available_schemas(
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Schemas the caller may start a ticket from"""
    try:
        service = SchemaService()
        return service.list_available_schemas(actor_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{schema_id}", response_model=TicketSchema)
async def get_schema(
    schema_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a published schema"""
    try:
        service = SchemaService()
        return service.get_schema(schema_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{schema_id}/flows/{flow_id}/probable-assign-users", response_model=List[User])
async def probable_assign_users(
    schema_id: str,
    flow_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Users a step would be bound to, for the ticket creation form"""
    try:
        service = SchemaService()
        return service.probable_assign_users(schema_id, flow_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{schema_id}/tickets", response_model=TicketListResponse)
async def list_schema_tickets(
    schema_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.max_page_size),
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """All tickets of a schema (schema managers only)"""
    try:
        service = TicketService()
        skip = (page - 1) * page_size
        items = service.list_tickets_for_schema(schema_id, actor_id, skip=skip, limit=page_size)
        return TicketListResponse(items=items, page=page, page_size=page_size)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
