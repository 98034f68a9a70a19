"""Field Rules - Per-type validation of submitted answers"""
from typing import Any, Callable, Dict, List, Optional

from pydantic import AnyUrl, EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..domain.enums import FieldType, FieldErrorCode, TextType, BlobKind
from ..domain.models import (
    FieldDefinition, ChoiceOption, SingleLineTextDefine, MultiLineTextDefine,
    SingleChoiceDefine, MultipleChoiceDefine, ImageDefine, FileDefine
)
from ..domain.errors import EngineError
from .condition_evaluator import values_equal

_email_adapter = TypeAdapter(EmailStr)
_url_adapter = TypeAdapter(AnyUrl)


class FieldViolation(Exception):
    """A single field failed one rule"""

    def __init__(self, code: FieldErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}


def _fail(field: FieldDefinition, code: FieldErrorCode, message: str) -> FieldViolation:
    return FieldViolation(code, f"{field.key}: {message}")


def _is_option(options: List[ChoiceOption], value: Any) -> bool:
    return any(values_equal(option.value, value) for option in options)


def _blob_id(raw: str) -> str:
    # Clients may send "<blob_id>.<ext>"
    return raw.split(".", 1)[0]


def _check_text(field: FieldDefinition, raw: Any, max_texts: int) -> str:
    if not isinstance(raw, str):
        raise _fail(field, FieldErrorCode.INVALID_TYPE, "expected a string")

    text = raw.strip()
    if not text and field.required:
        raise _fail(field, FieldErrorCode.REQUIRED, "this field is required")
    if len(text) > max_texts:
        raise _fail(field, FieldErrorCode.TEXT_TOO_LONG, f"at most {max_texts} characters")
    return text


def check_single_line_text(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: SingleLineTextDefine = field.define
    text = _check_text(field, raw, define.max_texts)
    if not text or define.text_type == TextType.STRING:
        return text

    adapter = _email_adapter if define.text_type == TextType.EMAIL else _url_adapter
    try:
        adapter.validate_python(text)
    except PydanticValidationError:
        raise _fail(field, FieldErrorCode.INVALID_FORMAT, f"not a valid {define.text_type.value}")
    return text


def check_multi_line_text(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: MultiLineTextDefine = field.define
    text = _check_text(field, raw, define.max_texts)
    if text and len(text.splitlines()) > define.max_lines:
        raise _fail(field, FieldErrorCode.TEXT_TOO_MANY_LINES, f"at most {define.max_lines} lines")
    return text


def check_single_choice(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: SingleChoiceDefine = field.define
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise _fail(field, FieldErrorCode.INVALID_TYPE, "expected an option value")
    if not _is_option(define.options, raw):
        raise _fail(field, FieldErrorCode.NOT_VALID_CHOICE, "not one of the options")
    return raw


def check_multiple_choice(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: MultipleChoiceDefine = field.define
    if not isinstance(raw, list):
        raise _fail(field, FieldErrorCode.INVALID_TYPE, "expected a list of option values")
    if not raw and field.required:
        raise _fail(field, FieldErrorCode.REQUIRED, "this field is required")
    if len(raw) > define.max_options:
        raise _fail(field, FieldErrorCode.TOO_MANY_CHOICES, f"at most {define.max_options} choices")
    if not all(_is_option(define.options, value) for value in raw):
        raise _fail(field, FieldErrorCode.NOT_VALID_CHOICE, "not one of the options")
    for index, value in enumerate(raw):
        if any(values_equal(value, other) for other in raw[:index]):
            raise _fail(field, FieldErrorCode.DUPLICATE_CHOICE, "option chosen more than once")
    return list(raw)


def check_bool(field: FieldDefinition, raw: Any, context: Any) -> Any:
    if not isinstance(raw, bool):
        raise _fail(field, FieldErrorCode.INVALID_TYPE, "expected true or false")
    return raw


def _check_blob(field: FieldDefinition, raw: Any, context: Any, kind: BlobKind,
                max_size: int, mimes: List[str]):
    if not isinstance(raw, str) or not raw.strip():
        raise _fail(field, FieldErrorCode.INVALID_TYPE, "expected an uploaded blob id")

    blob = context.get_blob(_blob_id(raw.strip())) if context is not None else None
    if blob is None or blob.kind != kind:
        raise _fail(field, FieldErrorCode.NOT_UPLOADED, f"{kind.value} has not been uploaded")
    if mimes and blob.mime not in mimes:
        raise _fail(field, FieldErrorCode.INVALID_MIME, f"type {blob.mime} is not allowed")
    if blob.size > max_size:
        raise _fail(field, FieldErrorCode.TOO_LARGE, f"larger than {max_size} bytes")
    return blob


def check_image(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: ImageDefine = field.define
    blob = _check_blob(field, raw, context, BlobKind.IMAGE, define.max_size, define.mimes)

    bounds = (
        (blob.width, define.min_width, define.max_width),
        (blob.height, define.min_height, define.max_height),
    )
    for actual, low, high in bounds:
        if low is None and high is None:
            continue
        if actual is None or (low is not None and actual < low) or (high is not None and actual > high):
            raise _fail(field, FieldErrorCode.INVALID_DIMENSIONS, "image dimensions out of bounds")
    return raw.strip()


def check_file(field: FieldDefinition, raw: Any, context: Any) -> Any:
    define: FileDefine = field.define
    _check_blob(field, raw, context, BlobKind.FILE, define.max_size, define.mimes)
    return raw.strip()


FieldRule = Callable[[FieldDefinition, Any, Any], Any]

FIELD_RULES: Dict[FieldType, FieldRule] = {
    FieldType.SINGLE_LINE_TEXT: check_single_line_text,
    FieldType.MULTI_LINE_TEXT: check_multi_line_text,
    FieldType.SINGLE_CHOICE: check_single_choice,
    FieldType.MULTIPLE_CHOICE: check_multiple_choice,
    FieldType.BOOL: check_bool,
    FieldType.IMAGE: check_image,
    FieldType.FILE: check_file,
}


def check_field(field: FieldDefinition, raw: Any, context: Any) -> Any:
    """
    Validate one present answer against its field define

    Returns:
        Normalized value

    Raises:
        FieldViolation: on the first rule the answer breaks
        EngineError: if the define has no rule (markers, unknown types)
    """
    rule: Optional[FieldRule] = FIELD_RULES.get(field.field_type)
    if rule is None:
        raise EngineError(
            f"No validation rule for field type {field.field_type.value}",
            details={"key": field.key}
        )
    return rule(field, raw, context)
