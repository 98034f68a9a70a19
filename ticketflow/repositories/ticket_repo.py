"""Ticket Repository - Data access for tickets and their embedded flow items"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError
from pymongo import DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Ticket, FormFlowValue
from ..domain.enums import TicketStatus
from ..domain.errors import (
    TicketNotFoundError, ConcurrencyError, AlreadyExistsError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TicketRepository:
    """
    Repository for ticket operations

    Flow items live inside the ticket document, so every state transition
    is a single conditional update on the ticket's version.
    """

    def __init__(self):
        self._tickets: Collection = get_collection("tickets")

    # =========================================================================
    # Ticket CRUD
    # =========================================================================

    def create_ticket(self, ticket: Ticket) -> Ticket:
        """Create a new ticket"""
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = ticket.model_dump()
        doc["_id"] = ticket.ticket_id

        try:
            self._tickets.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Ticket {ticket.ticket_id} already exists")

        logger.info(f"Created ticket: {ticket.ticket_id}", extra={"ticket_id": ticket.ticket_id})
        return ticket

    def _to_model(self, doc: Dict[str, Any]) -> Ticket:
        doc.pop("_id", None)
        return Ticket.model_validate(doc)

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID"""
        doc = self._tickets.find_one({"ticket_id": ticket_id})
        if doc:
            return self._to_model(doc)
        return None

    def get_ticket_or_raise(self, ticket_id: str) -> Ticket:
        """Get ticket by ID or raise error"""
        ticket = self.get_ticket(ticket_id)
        if not ticket:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    def replace_ticket(self, ticket: Ticket, expected_version: int) -> Ticket:
        """
        Commit a fully computed ticket state with optimistic concurrency

        The stored document is replaced only if its version still equals
        expected_version; the new version is expected_version + 1.
        """
        doc = ticket.model_dump()
        doc["version"] = expected_version + 1
        doc.pop("_id", None)

        result = self._tickets.find_one_and_update(
            {"ticket_id": ticket.ticket_id, "version": expected_version},
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            if self._tickets.find_one({"ticket_id": ticket.ticket_id}, {"_id": 1}):
                raise ConcurrencyError(
                    f"Ticket {ticket.ticket_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise TicketNotFoundError(f"Ticket {ticket.ticket_id} not found")

        logger.info(
            f"Updated ticket: {ticket.ticket_id}",
            extra={"ticket_id": ticket.ticket_id, "status": ticket.status}
        )
        return self._to_model(result)

    # =========================================================================
    # Queries
    # =========================================================================

    def list_tickets_for_user(
        self,
        user_id: str,
        statuses: Optional[List[TicketStatus]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Ticket]:
        """Tickets the user requested or is bound to on some step"""
        query: Dict[str, Any] = {
            "$or": [{"requester_id": user_id}, {"flows.user_id": user_id}]
        }
        if statuses:
            query["status"] = {"$in": [TicketStatus(s).value for s in statuses]}

        cursor = self._tickets.find(query).sort("updated_at", DESCENDING).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def list_tickets_for_schema(
        self,
        schema_id: str,
        skip: int = 0,
        limit: int = 50
    ) -> List[Ticket]:
        """All tickets instantiated from a schema"""
        cursor = self._tickets.find({"schema_id": schema_id}).sort(
            "updated_at", DESCENDING
        ).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def find_latest_form_value(
        self,
        flow_ids: List[str],
        submitted_by: str,
        exclude_ticket_id: Optional[str] = None
    ) -> Optional[FormFlowValue]:
        """
        Most recent form answers a user submitted on any of the given schema steps

        Used to resolve Dynamic field defaults across tickets.
        """
        if not flow_ids:
            return None

        query: Dict[str, Any] = {
            "flows": {
                "$elemMatch": {
                    "flow_id": {"$in": flow_ids},
                    "value.type": "Form",
                    "value.submitted_by": submitted_by,
                }
            }
        }
        if exclude_ticket_id:
            query["ticket_id"] = {"$ne": exclude_ticket_id}

        latest: Optional[FormFlowValue] = None
        for doc in self._tickets.find(query).sort("updated_at", DESCENDING).limit(20):
            ticket = self._to_model(doc)
            for item in ticket.flows:
                value = item.value
                if (
                    item.flow_id in flow_ids
                    and isinstance(value, FormFlowValue)
                    and value.submitted_by == submitted_by
                    and (latest is None or value.submitted_at > latest.submitted_at)
                ):
                    latest = value
        return latest
