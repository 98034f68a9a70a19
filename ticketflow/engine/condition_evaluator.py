"""Condition Evaluator - IfEqual block conditions and field default resolution"""
from typing import Any, Dict, Optional

from ..domain.models import IfEqualDefine, StaticDefault, DynamicDefault
from ..utils.logger import get_logger

logger = get_logger(__name__)


def values_equal(left: Any, right: Any) -> bool:
    """
    Exact equality for answer values.

    Booleans never equal integers, "1" never equals 1, and lists compare
    element-wise with the same rule.
    """
    if isinstance(left, (list, tuple)) or isinstance(right, (list, tuple)):
        if not (isinstance(left, (list, tuple)) and isinstance(right, (list, tuple))):
            return False
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))

    if type(left) is not type(right):
        return False
    return left == right


class ConditionEvaluator:
    """
    Evaluate IfEqual block conditions

    No eval() or exec(); the only operator is set membership under
    values_equal.
    """

    def resolve_default(
        self,
        default: Optional[StaticDefault | DynamicDefault],
        context: Any
    ) -> Any:
        """
        Resolve a field default to a concrete value

        Args:
            default: Static or Dynamic default (or None)
            context: FormContext providing answer lookups

        Returns:
            Static content, the referenced answer, or the dynamic fallback value
        """
        if default is None:
            return None

        if isinstance(default, StaticDefault):
            return default.content

        ref = default.content
        found = context.lookup_answer(ref) if context is not None else None
        if found is not None:
            return found
        return ref.value

    def condition_value(
        self,
        define: IfEqualDefine,
        answers: Dict[str, Any],
        context: Any
    ) -> Any:
        """Left-hand value of the condition: the live answer wins over `from`"""
        if define.key in answers:
            return answers[define.key]
        return self.resolve_default(define.from_, context)

    def evaluate(
        self,
        define: IfEqualDefine,
        answers: Dict[str, Any],
        context: Any
    ) -> bool:
        """True iff the condition value is a member of the block's value set"""
        value = self.condition_value(define, answers, context)
        result = any(values_equal(value, candidate) for candidate in define.value)

        logger.debug(
            f"IfEqual '{define.key}' evaluated to {result}",
            extra={"action": "evaluate_condition"}
        )
        return result
