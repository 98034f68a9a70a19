"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Random 12-hex id, optionally prefixed

    >>> generate_id('TKT')
    'TKT-a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]
    return f"{prefix}-{unique_part}" if prefix else unique_part


# Schema side
def generate_schema_id() -> str:
    return generate_id("SCH")


def generate_flow_id() -> str:
    return generate_id("FLW")


def generate_form_id() -> str:
    return generate_id("FRM")


def generate_field_id() -> str:
    return generate_id("FLD")


def generate_review_id() -> str:
    return generate_id("REV")


# Ticket side
def generate_ticket_id() -> str:
    return generate_id("TKT")


def generate_flow_item_id() -> str:
    return generate_id("ITEM")


def generate_audit_event_id() -> str:
    return generate_id("AUD")


# Directory and blobs
def generate_user_id() -> str:
    return generate_id("USR")


def generate_role_id() -> str:
    return generate_id("ROLE")


def generate_blob_id() -> str:
    return generate_id("BLOB")


def generate_correlation_id() -> str:
    """COR-<utc yyyymmddHHMMSS>-<8 hex>, sortable by request time"""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"COR-{stamp}-{uuid.uuid4().hex[:8]}"
