"""Workflow Engine - Forms, assignment and ticket progression"""
from .engine import WorkflowEngine, TicketLockRegistry, ticket_locks
from .form_engine import FormEngine, FormContext
from .condition_evaluator import ConditionEvaluator, values_equal
from .assignment_resolver import AssignmentResolver
from .permission_guard import PermissionGuard
from .audit_writer import AuditWriter

__all__ = [
    "WorkflowEngine",
    "TicketLockRegistry",
    "ticket_locks",
    "FormEngine",
    "FormContext",
    "ConditionEvaluator",
    "values_equal",
    "AssignmentResolver",
    "PermissionGuard",
    "AuditWriter",
]
