"""
Form Engine - Structure checks, conditional visibility and submission validation

A form is a flat list of fields in which IfEqual/IfEnd markers delimit
conditional blocks. validate_structure compiles that list once into a block
tree (an arena of BlockNode with parent indices); visibility and validation
walk the compiled tree instead of re-scanning markers.
"""
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from ..domain.models import (
    FormDefinition, FieldDefinition, IfEqualDefine, DynamicDefaultRef, BlobRef
)
from ..domain.enums import FieldType, FieldErrorCode
from ..domain.errors import FormStructureError, FieldErrors, InvalidSubmissionError
from ..utils.time import is_past
from ..utils.logger import get_logger
from .condition_evaluator import ConditionEvaluator
from .field_rules import FieldViolation, check_field

logger = get_logger(__name__)


class FormContext:
    """
    Lookups the form engine needs beyond the submitted answers

    answer_lookup resolves a Dynamic default reference to a stored answer
    (None when nothing is stored); blob_lookup returns registered blob
    metadata by id.
    """

    def __init__(
        self,
        answer_lookup: Optional[Callable[[DynamicDefaultRef], Any]] = None,
        blob_lookup: Optional[Callable[[str], Optional[BlobRef]]] = None
    ):
        self._answer_lookup = answer_lookup
        self._blob_lookup = blob_lookup

    def lookup_answer(self, ref: DynamicDefaultRef) -> Any:
        if self._answer_lookup is None:
            return None
        return self._answer_lookup(ref)

    def get_blob(self, blob_id: str) -> Optional[BlobRef]:
        if self._blob_lookup is None:
            return None
        return self._blob_lookup(blob_id)


class BlockNode(BaseModel):
    """One conditional block; index 0 is the always-visible root"""

    index: int
    parent: Optional[int] = None
    key: Optional[str] = None
    condition: Optional[IfEqualDefine] = None


class LaidOutField(BaseModel):
    """Answerable field and the innermost block that encloses it"""

    field: FieldDefinition
    block: int


class FormLayout(BaseModel):
    """Compiled block tree of a form"""

    blocks: List[BlockNode] = Field(default_factory=list)
    fields: List[LaidOutField] = Field(default_factory=list)

    @property
    def field_keys(self) -> Set[str]:
        return {entry.field.key for entry in self.fields}


class FormEngine:
    """
    Pure form logic: no persistence, no side effects

    Dynamic defaults and blob metadata are reached only through the
    FormContext handed in by the caller.
    """

    def __init__(self):
        self.condition_evaluator = ConditionEvaluator()

    # =========================================================================
    # Structure
    # =========================================================================

    def validate_structure(self, form: FormDefinition) -> FormLayout:
        """
        Check IfEqual/IfEnd balance and key uniqueness, then compile the block tree

        Raises:
            FormStructureError: with details.errors listing every problem
        """
        errors: List[Dict[str, str]] = []
        blocks: List[BlockNode] = [BlockNode(index=0)]
        laid_out: List[LaidOutField] = []
        stack: List[int] = [0]
        seen_keys: Set[str] = set()

        for position, field in enumerate(form.fields):
            path = f"fields[{position}]"
            field_type = field.field_type

            if field_type == FieldType.IF_EQUAL:
                open_keys = [blocks[i].key for i in stack[1:]]
                if field.define.key in open_keys:
                    errors.append({
                        "type": "NESTED_SAME_KEY",
                        "message": f"IfEqual '{field.define.key}' is nested inside a block with the same key",
                        "path": path,
                    })
                node = BlockNode(
                    index=len(blocks),
                    parent=stack[-1],
                    key=field.define.key,
                    condition=field.define,
                )
                blocks.append(node)
                stack.append(node.index)

            elif field_type == FieldType.IF_END:
                if len(stack) == 1:
                    errors.append({
                        "type": "UNMATCHED_IF_END",
                        "message": f"IfEnd '{field.define.key}' has no open block",
                        "path": path,
                    })
                elif blocks[stack[-1]].key != field.define.key:
                    errors.append({
                        "type": "MISMATCHED_IF_END",
                        "message": (
                            f"IfEnd '{field.define.key}' does not close the innermost "
                            f"block '{blocks[stack[-1]].key}'"
                        ),
                        "path": path,
                    })
                else:
                    stack.pop()

            else:
                if field.key in seen_keys:
                    errors.append({
                        "type": "DUPLICATE_FIELD_KEY",
                        "message": f"Field key '{field.key}' is used more than once",
                        "path": path,
                    })
                seen_keys.add(field.key)
                laid_out.append(LaidOutField(field=field, block=stack[-1]))

        for index in stack[1:]:
            errors.append({
                "type": "UNCLOSED_BLOCK",
                "message": f"IfEqual '{blocks[index].key}' is never closed",
                "path": "fields",
            })

        if errors:
            raise FormStructureError(
                f"Form {form.form_id} has {len(errors)} structural problem(s)",
                details={"form_id": form.form_id, "errors": errors}
            )

        layout = FormLayout(blocks=blocks, fields=laid_out)
        form._layout = layout
        return layout

    def layout_for(self, form: FormDefinition) -> FormLayout:
        """Cached block tree, compiling it on first use"""
        if form._layout is None:
            return self.validate_structure(form)
        return form._layout

    def answerable_fields(self, form: FormDefinition) -> List[FieldDefinition]:
        """All non-marker fields in declaration order"""
        return [entry.field for entry in self.layout_for(form).fields]

    # =========================================================================
    # Visibility
    # =========================================================================

    def _visible_blocks(
        self,
        layout: FormLayout,
        answers: Dict[str, Any],
        context: Optional[FormContext]
    ) -> List[bool]:
        # Parents always precede children in the arena
        visible: List[bool] = [True] * len(layout.blocks)
        for block in layout.blocks[1:]:
            if not visible[block.parent]:
                visible[block.index] = False
                continue
            visible[block.index] = self.condition_evaluator.evaluate(
                block.condition, answers, context
            )
        return visible

    def visible_fields(
        self,
        form: FormDefinition,
        answers: Optional[Dict[str, Any]] = None,
        context: Optional[FormContext] = None
    ) -> List[FieldDefinition]:
        """
        Fields whose every enclosing IfEqual condition holds

        Markers are never returned.
        """
        layout = self.layout_for(form)
        visible = self._visible_blocks(layout, answers or {}, context)
        return [entry.field for entry in layout.fields if visible[entry.block]]

    # =========================================================================
    # Submission
    # =========================================================================

    def validate_submission(
        self,
        form: FormDefinition,
        answers: Dict[str, Any],
        context: Optional[FormContext] = None
    ) -> Dict[str, Any]:
        """
        Validate answers against the visible fields of a form

        Returns:
            Normalized answers (trimmed strings, condition driver values,
            defaults of non-editable fields); hidden fields are dropped

        Raises:
            InvalidSubmissionError: if the form has expired
            FieldErrors: with every field violation at once
        """
        if is_past(form.expired_at):
            raise InvalidSubmissionError(
                f"Form {form.form_id} no longer accepts submissions",
                details={"form_id": form.form_id, "expired_at": str(form.expired_at)}
            )

        layout = self.layout_for(form)
        visible = self._visible_blocks(layout, answers, context)
        errors: Dict[str, Dict[str, str]] = {}
        normalized: Dict[str, Any] = {}

        for entry in layout.fields:
            if not visible[entry.block]:
                continue
            field = entry.field

            if not field.editable:
                default = self.condition_evaluator.resolve_default(field.define.default, context)
                if default is not None:
                    normalized[field.key] = default
                continue

            raw = answers.get(field.key)
            if raw is None:
                if field.required:
                    errors[field.key] = {
                        "code": FieldErrorCode.REQUIRED.value,
                        "message": f"{field.key}: this field is required",
                    }
                continue

            try:
                normalized[field.key] = check_field(field, raw, context)
            except FieldViolation as violation:
                errors[field.key] = violation.to_dict()

        field_keys = layout.field_keys
        for block in layout.blocks[1:]:
            if block.key not in field_keys and block.key in answers:
                normalized[block.key] = answers[block.key]

        if errors:
            logger.info(
                f"Submission for form {form.form_id} rejected: {sorted(errors)}",
                extra={"action": "validate_submission"}
            )
            raise FieldErrors(errors)

        return normalized
