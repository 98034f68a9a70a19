"""Directory API Routes - Users and roles"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from ..deps import get_actor_id_dep, get_correlation_id_dep
from ...domain.models import User, Role
from ...domain.errors import DomainError
from ...services.directory_service import DirectoryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class CreateUserRequest(BaseModel):
    """Register a user"""
    user_id: Optional[str] = Field(None, min_length=1, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    active: bool = True


class CreateRoleRequest(BaseModel):
    """Create a role"""
    role_id: Optional[str] = Field(None, min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=200)
    member_ids: List[str] = Field(default_factory=list)


class AddMemberRequest(BaseModel):
    """Add a user to a role"""
    user_id: str


# ============================================================================
# Routes
# ============================================================================

@router.post("/users", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Register a directory user"""
    try:
        service = DirectoryService()
        return service.create_user(
            display_name=request.display_name,
            email=request.email,
            user_id=request.user_id,
            active=request.active
        )
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/users/{user_id}", response_model=User)
async def get_user(
    user_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        service = DirectoryService()
        return service.get_user(user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/roles", response_model=Role, status_code=status.HTTP_201_CREATED)
async def create_role(
    request: CreateRoleRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Create a role with an ordered member list"""
    try:
        service = DirectoryService()
        return service.create_role(
            name=request.name,
            member_ids=request.member_ids,
            role_id=request.role_id
        )
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/roles/{role_id}", response_model=Role)
async def get_role(
    role_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        service = DirectoryService()
        return service.get_role(role_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.post("/roles/{role_id}/members", response_model=Role)
async def add_role_member(
    role_id: str,
    request: AddMemberRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Append a user to the role's membership"""
    try:
        service = DirectoryService()
        return service.add_member(role_id, request.user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.delete("/roles/{role_id}/members/{user_id}", response_model=Role)
async def remove_role_member(
    role_id: str,
    user_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Remove a user from the role"""
    try:
        service = DirectoryService()
        return service.remove_member(role_id, user_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
