"""Schema Service - Publication and lookup of ticket schemas"""
from typing import Any, Dict, List, Optional, Tuple

from ..domain.models import (
    SchemaDraft, FlowStepDraft, TicketSchema, SchemaFlowStep, FormDefinition,
    User, DynamicDefault, IfEqualDefine, SingleChoiceDefine,
    MultipleChoiceDefine, ImageDefine, FileDefine
)
from ..domain.enums import FileMime, ImageMime
from ..domain.errors import (
    SchemaValidationError, FormStructureError, FlowNotFoundError, NotFoundError
)
from ..engine.form_engine import FormEngine
from ..engine.condition_evaluator import values_equal
from ..engine.assignment_resolver import AssignmentResolver
from ..engine.audit_writer import AuditWriter
from ..repositories.schema_repo import SchemaRepository
from ..utils.idgen import generate_schema_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

FILE_MIMES = {mime.value for mime in FileMime}
IMAGE_MIMES = {mime.value for mime in ImageMime}


class SchemaService:
    """Service for ticket schema operations (publish once, never edit)"""

    def __init__(self):
        self.repo = SchemaRepository()
        self.form_engine = FormEngine()
        self.assignment_resolver = AssignmentResolver()
        self.audit_writer = AuditWriter()

    # =========================================================================
    # Publication
    # =========================================================================

    def publish(self, draft: SchemaDraft, actor_id: str) -> TicketSchema:
        """
        Validate a draft and freeze it as a published schema

        Raises:
            SchemaValidationError: details.errors lists every problem found
        """
        errors: List[Dict[str, Any]] = []

        if not draft.flows:
            errors.append({
                "type": "EMPTY_FLOWS",
                "message": "Schema must have at least one step",
                "path": "flows"
            })

        ordered = self._order_steps(draft.flows, errors)
        self._validate_ids(ordered, errors)

        for position, (index, step) in enumerate(ordered):
            path = f"flows[{index}]"
            self._validate_operator(step, path, errors)
            if isinstance(step.module, FormDefinition):
                earlier = [s.module for _, s in ordered[:position] if isinstance(s.module, FormDefinition)]
                self._validate_form(step.module, earlier, f"{path}.module", errors)

        if errors:
            logger.info(
                f"Schema draft rejected with {len(errors)} error(s)",
                extra={"actor_id": actor_id, "action": "publish_schema"}
            )
            raise SchemaValidationError(
                "Schema validation failed",
                details={"errors": errors}
            )

        now = utc_now()
        manager_ids = list(dict.fromkeys([actor_id] + draft.manager_ids))
        schema = TicketSchema(
            schema_id=generate_schema_id(),
            title_zh=draft.title_zh,
            title_en=draft.title_en,
            description_zh=draft.description_zh,
            description_en=draft.description_en,
            manager_ids=manager_ids,
            published_by=actor_id,
            flows=[
                SchemaFlowStep(
                    flow_id=step.flow_id,
                    order=order,
                    name_zh=step.name_zh,
                    name_en=step.name_en,
                    operator=step.operator,
                    module=step.module,
                )
                for order, (_, step) in enumerate(ordered)
            ],
            created_at=now,
            updated_at=now,
        )

        self.repo.create_schema(schema)
        self.audit_writer.write_publish_schema(schema.schema_id, actor_id, len(schema.flows))

        logger.info(
            f"Published schema: {schema.schema_id}",
            extra={"schema_id": schema.schema_id, "actor_id": actor_id, "action": "publish_schema"}
        )
        return schema

    def _order_steps(
        self,
        steps: List[FlowStepDraft],
        errors: List[Dict[str, Any]]
    ) -> List[Tuple[int, FlowStepDraft]]:
        """
        Sort steps by explicit order, falling back to list position

        Returns (draft index, step) pairs in final order; dense order
        indices are assigned from this sequence.
        """
        seen: Dict[int, int] = {}
        for index, step in enumerate(steps):
            if step.order is None:
                continue
            if step.order in seen:
                errors.append({
                    "type": "DUPLICATE_ORDER",
                    "message": f"Order {step.order} is used by flows[{seen[step.order]}] and flows[{index}]",
                    "path": f"flows[{index}].order"
                })
            else:
                seen[step.order] = index

        indexed = list(enumerate(steps))
        return sorted(
            indexed,
            key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0], pair[0])
        )

    def _validate_ids(self, ordered: List[Tuple[int, FlowStepDraft]], errors: List[Dict[str, Any]]) -> None:
        flow_ids: Dict[str, int] = {}
        form_ids: Dict[str, int] = {}
        for index, step in ordered:
            if step.flow_id in flow_ids:
                errors.append({
                    "type": "DUPLICATE_FLOW_ID",
                    "message": f"Flow id {step.flow_id} is used more than once",
                    "path": f"flows[{index}].flow_id"
                })
            flow_ids[step.flow_id] = index

            if isinstance(step.module, FormDefinition):
                if step.module.form_id in form_ids:
                    errors.append({
                        "type": "DUPLICATE_FORM_ID",
                        "message": f"Form id {step.module.form_id} is used more than once",
                        "path": f"flows[{index}].module.form_id"
                    })
                form_ids[step.module.form_id] = index

        for form_id in self.repo.form_ids_in_use(list(form_ids)):
            errors.append({
                "type": "FORM_ID_IN_USE",
                "message": f"Form id {form_id} already belongs to a published schema",
                "path": f"flows[{form_ids[form_id]}].module.form_id"
            })

    def _validate_operator(self, step: FlowStepDraft, path: str, errors: List[Dict[str, Any]]) -> None:
        try:
            self.assignment_resolver.resolve(step.operator)
        except NotFoundError as e:
            errors.append({
                "type": "OPERATOR_NOT_FOUND",
                "message": e.message,
                "path": f"{path}.operator"
            })

    def _validate_form(
        self,
        form: FormDefinition,
        earlier_forms: List[FormDefinition],
        path: str,
        errors: List[Dict[str, Any]]
    ) -> None:
        try:
            self.form_engine.validate_structure(form)
        except FormStructureError as e:
            for problem in e.details.get("errors", []):
                errors.append({**problem, "path": f"{path}.{problem['path']}"})

        for position, field in enumerate(form.fields):
            field_path = f"{path}.fields[{position}].define"
            define = field.define

            if isinstance(define, (SingleChoiceDefine, MultipleChoiceDefine)):
                self._validate_options(define, field_path, errors)
            if isinstance(define, ImageDefine):
                self._validate_mimes(define.mimes, IMAGE_MIMES, field_path, errors)
                for low, high, name in (
                    (define.min_width, define.max_width, "width"),
                    (define.min_height, define.max_height, "height"),
                ):
                    if low is not None and high is not None and low > high:
                        errors.append({
                            "type": "INVALID_BOUNDS",
                            "message": f"min_{name} is greater than max_{name}",
                            "path": field_path
                        })
            if isinstance(define, FileDefine):
                self._validate_mimes(define.mimes, FILE_MIMES, field_path, errors)

            default = define.from_ if isinstance(define, IfEqualDefine) else getattr(define, "default", None)
            if isinstance(default, DynamicDefault):
                self._validate_dynamic_ref(default, earlier_forms, field_path, errors)

    def _validate_options(self, define, path: str, errors: List[Dict[str, Any]]) -> None:
        if not define.options:
            errors.append({
                "type": "EMPTY_OPTIONS",
                "message": "Choice fields need at least one option",
                "path": f"{path}.options"
            })
        for index, option in enumerate(define.options):
            if any(values_equal(option.value, other.value) for other in define.options[:index]):
                errors.append({
                    "type": "DUPLICATE_OPTION",
                    "message": f"Option value {option.value!r} is used more than once",
                    "path": f"{path}.options[{index}]"
                })
        if isinstance(define, MultipleChoiceDefine) and define.max_options < 1:
            errors.append({
                "type": "INVALID_MAX_OPTIONS",
                "message": "max_options must be at least 1",
                "path": f"{path}.max_options"
            })

    def _validate_mimes(self, mimes: List[str], allowed: set, path: str, errors: List[Dict[str, Any]]) -> None:
        for mime in mimes:
            if mime not in allowed:
                errors.append({
                    "type": "INVALID_MIME",
                    "message": f"Mime type {mime} is not supported",
                    "path": f"{path}.mimes"
                })

    def _validate_dynamic_ref(
        self,
        default: DynamicDefault,
        earlier_forms: List[FormDefinition],
        path: str,
        errors: List[Dict[str, Any]]
    ) -> None:
        ref = default.content
        referenced: Optional[FormDefinition] = next(
            (form for form in earlier_forms if form.form_id == ref.form_id), None
        )
        if referenced is None:
            owner = self.repo.find_form(ref.form_id)
            if owner is not None:
                if ref.flow_id is not None and owner[1].flow_id != ref.flow_id:
                    errors.append({
                        "type": "DYNAMIC_DEFAULT_REF",
                        "message": f"Form {ref.form_id} does not belong to flow {ref.flow_id}",
                        "path": path
                    })
                    return
                referenced = owner[1].module

        if referenced is None:
            errors.append({
                "type": "DYNAMIC_DEFAULT_REF",
                "message": f"Form {ref.form_id} is neither an earlier step nor a published form",
                "path": path
            })
            return

        keys = {field.key for field in referenced.fields if not field.is_marker}
        if ref.field_key not in keys:
            errors.append({
                "type": "DYNAMIC_DEFAULT_REF",
                "message": f"Form {ref.form_id} has no field '{ref.field_key}'",
                "path": path
            })

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_schema(self, schema_id: str) -> TicketSchema:
        """Get published schema"""
        return self.repo.get_schema_or_raise(schema_id)

    def list_schemas(self, skip: int = 0, limit: int = 50) -> List[TicketSchema]:
        """List published schemas"""
        return self.repo.list_schemas(skip=skip, limit=limit)

    def count_schemas(self) -> int:
        return self.repo.count_schemas()

    def list_available_schemas(self, user_id: str) -> List[TicketSchema]:
        """Schemas whose first step the user may act on"""
        available = []
        for schema in self.repo.list_all_schemas():
            first = min(schema.flows, key=lambda flow: flow.order)
            if self.assignment_resolver.is_eligible(first.operator, user_id):
                available.append(schema)
        return available

    def probable_assign_users(self, schema_id: str, flow_id: str) -> List[User]:
        """Users a step could be bound to, before any ticket exists"""
        schema = self.repo.get_schema_or_raise(schema_id)
        flow = schema.get_flow(flow_id)
        if flow is None:
            raise FlowNotFoundError(
                f"Schema {schema_id} has no step {flow_id}",
                details={"schema_id": schema_id, "flow_id": flow_id}
            )
        return self.assignment_resolver.resolve(flow.operator)
