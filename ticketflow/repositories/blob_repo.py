"""Blob Repository - Data access for uploaded file/image metadata"""
from typing import Optional
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import BlobRef
from ..domain.errors import BlobNotFoundError, AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class BlobRepository:
    """Repository for blob metadata operations"""

    def __init__(self):
        self._blobs: Collection = get_collection("blobs")

    def create_blob(self, blob: BlobRef) -> BlobRef:
        """Register blob metadata"""
        doc = blob.model_dump(mode="json")
        doc["_id"] = blob.blob_id

        try:
            self._blobs.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Blob {blob.blob_id} already exists")

        logger.info(
            f"Registered blob: {blob.blob_id}",
            extra={"actor_id": blob.uploaded_by}
        )
        return blob

    def get_blob(self, blob_id: str) -> Optional[BlobRef]:
        """Get blob by ID"""
        doc = self._blobs.find_one({"blob_id": blob_id})
        if doc:
            doc.pop("_id", None)
            return BlobRef.model_validate(doc)
        return None

    def get_blob_or_raise(self, blob_id: str) -> BlobRef:
        """Get blob by ID or raise error"""
        blob = self.get_blob(blob_id)
        if not blob:
            raise BlobNotFoundError(f"Blob {blob_id} not found")
        return blob
