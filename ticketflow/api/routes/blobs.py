"""Blob API Routes - Metadata registration for uploaded files and images"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..deps import get_actor_id_dep, get_correlation_id_dep
from ...domain.models import BlobRef
from ...domain.enums import BlobKind
from ...domain.errors import DomainError
from ...services.blob_service import BlobService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


class RegisterBlobRequest(BaseModel):
    """Metadata reported by the upload layer"""
    blob_id: Optional[str] = Field(None, min_length=1, max_length=128)
    kind: BlobKind
    mime: str
    size: int = Field(..., ge=0)
    width: Optional[int] = Field(None, ge=0)
    height: Optional[int] = Field(None, ge=0)


@router.post("/", response_model=BlobRef, status_code=status.HTTP_201_CREATED)
async def register_blob(
    request: RegisterBlobRequest,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Register an uploaded blob

    Form answers for Image/File fields reference the returned blob_id.
    """
    try:
        service = BlobService()
        return service.register_blob(
            kind=request.kind,
            mime=request.mime,
            size=request.size,
            uploaded_by=actor_id,
            width=request.width,
            height=request.height,
            blob_id=request.blob_id
        )
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())


@router.get("/{blob_id}", response_model=BlobRef)
async def get_blob(
    blob_id: str,
    actor_id: str = Depends(get_actor_id_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    try:
        service = BlobService()
        return service.get_blob(blob_id)
    except DomainError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())
