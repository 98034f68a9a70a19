"""Schema Repository - Data access for published ticket schemas"""
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError
from pymongo import DESCENDING

from .mongo_client import get_collection
from ..config.settings import settings
from ..domain.models import TicketSchema, SchemaFlowStep
from ..domain.errors import SchemaNotFoundError, AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)


# Published schemas never change, so loaded models (and the form layouts
# compiled onto them) are shared across requests
_schema_cache: "OrderedDict[str, TicketSchema]" = OrderedDict()
_schema_cache_lock = threading.Lock()


def clear_schema_cache() -> None:
    with _schema_cache_lock:
        _schema_cache.clear()


class SchemaRepository:
    """Repository for ticket schemas (append-only, never updated in place)"""

    def __init__(self):
        self._schemas: Collection = get_collection("schemas")

    def create_schema(self, schema: TicketSchema) -> TicketSchema:
        """Store a freshly published schema"""
        doc = schema.model_dump(mode="json", by_alias=True)
        doc["_id"] = schema.schema_id

        try:
            self._schemas.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Schema {schema.schema_id} already exists")

        logger.info(f"Created schema: {schema.schema_id}", extra={"schema_id": schema.schema_id})
        return schema

    def _to_model(self, doc: Dict[str, Any]) -> TicketSchema:
        schema_id = doc.get("schema_id")
        with _schema_cache_lock:
            cached = _schema_cache.get(schema_id)
            if cached is not None:
                _schema_cache.move_to_end(schema_id)
                return cached

        doc.pop("_id", None)
        schema = TicketSchema.model_validate(doc)
        with _schema_cache_lock:
            _schema_cache[schema_id] = schema
            while len(_schema_cache) > settings.schema_cache_size:
                _schema_cache.popitem(last=False)
        return schema

    def get_schema(self, schema_id: str) -> Optional[TicketSchema]:
        """Get schema by ID"""
        doc = self._schemas.find_one({"schema_id": schema_id})
        if doc:
            return self._to_model(doc)
        return None

    def get_schema_or_raise(self, schema_id: str) -> TicketSchema:
        """Get schema by ID or raise error"""
        schema = self.get_schema(schema_id)
        if not schema:
            raise SchemaNotFoundError(f"Schema {schema_id} not found")
        return schema

    def list_schemas(self, skip: int = 0, limit: int = 50) -> List[TicketSchema]:
        """List schemas, newest first"""
        cursor = self._schemas.find({}).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [self._to_model(doc) for doc in cursor]

    def count_schemas(self) -> int:
        return self._schemas.count_documents({})

    def find_form(self, form_id: str) -> Optional[Tuple[TicketSchema, SchemaFlowStep]]:
        """Locate the published schema step that owns a form"""
        doc = self._schemas.find_one({"flows.module.form_id": form_id})
        if not doc:
            return None

        schema = self._to_model(doc)
        for flow in schema.flows:
            if getattr(flow.module, "form_id", None) == form_id:
                return schema, flow
        return None

    def form_ids_in_use(self, form_ids: List[str]) -> List[str]:
        """Which of the given form ids already belong to a published schema"""
        if not form_ids:
            return []
        in_use = set()
        cursor = self._schemas.find({"flows.module.form_id": {"$in": form_ids}})
        for doc in cursor:
            for flow in doc.get("flows", []):
                form_id = flow.get("module", {}).get("form_id")
                if form_id in form_ids:
                    in_use.add(form_id)
        return sorted(in_use)

    def list_all_schemas(self) -> List[TicketSchema]:
        """Every published schema, newest first"""
        return [self._to_model(doc) for doc in self._schemas.find({}).sort("created_at", DESCENDING)]
