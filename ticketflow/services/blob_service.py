"""Blob Service - Registration of uploaded file/image metadata"""
from typing import Optional

from ..domain.models import BlobRef
from ..domain.enums import BlobKind, FileMime, ImageMime
from ..domain.errors import ValidationError
from ..repositories.blob_repo import BlobRepository
from ..utils.idgen import generate_blob_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class BlobService:
    """
    Service for blob metadata

    Bytes are stored by the upload layer; this only records what form
    validation needs (kind, mime, size, dimensions).
    """

    def __init__(self):
        self.repo = BlobRepository()

    def register_blob(
        self,
        kind: BlobKind,
        mime: str,
        size: int,
        uploaded_by: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
        blob_id: Optional[str] = None
    ) -> BlobRef:
        """Register metadata of an uploaded blob"""
        kind = BlobKind(kind)
        allowed = {m.value for m in (ImageMime if kind == BlobKind.IMAGE else FileMime)}
        if mime not in allowed:
            raise ValidationError(
                f"Mime type {mime} is not allowed for {kind.value} uploads",
                details={"mime": mime, "kind": kind.value}
            )

        blob = BlobRef(
            blob_id=blob_id or generate_blob_id(),
            kind=kind,
            mime=mime,
            size=size,
            width=width,
            height=height,
            uploaded_by=uploaded_by,
            created_at=utc_now(),
        )
        return self.repo.create_blob(blob)

    def get_blob(self, blob_id: str) -> BlobRef:
        return self.repo.get_blob_or_raise(blob_id)
