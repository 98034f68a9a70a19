"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, set_database
from .schema_repo import SchemaRepository
from .ticket_repo import TicketRepository
from .directory_repo import DirectoryRepository
from .blob_repo import BlobRepository
from .audit_repo import AuditRepository

__all__ = [
    "get_database",
    "get_collection",
    "set_database",
    "SchemaRepository",
    "TicketRepository",
    "DirectoryRepository",
    "BlobRepository",
    "AuditRepository",
]
