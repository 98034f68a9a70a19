"""Service modules - Business logic layer"""
from .schema_service import SchemaService
from .ticket_service import TicketService
from .directory_service import DirectoryService
from .blob_service import BlobService

__all__ = [
    "SchemaService",
    "TicketService",
    "DirectoryService",
    "BlobService",
]
