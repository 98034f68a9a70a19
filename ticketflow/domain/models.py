"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import (
    BaseModel, Field, EmailStr, ConfigDict, PrivateAttr,
    StrictBool, StrictInt, StrictStr
)

from .enums import (
    TicketStatus, TextType, BlobKind, AuditEventType, FieldType
)
from ..utils.idgen import (
    generate_flow_id, generate_form_id, generate_field_id, generate_review_id
)


# Answer and option values compare by exact equality, so True never matches 1
OptionValue = Union[StrictInt, StrictStr]
ConditionValue = Union[StrictBool, StrictInt, StrictStr]


# ============================================================================
# Directory
# ============================================================================

class User(BaseModel):
    """Directory user"""
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., description="Opaque user ID")
    display_name: str
    email: Optional[EmailStr] = None
    active: bool = Field(default=True, description="Inactive users are never assigned")
    created_at: datetime
    updated_at: datetime


class Role(BaseModel):
    """Directory role (ordered membership)"""
    model_config = ConfigDict(extra="ignore")

    role_id: str = Field(..., description="Opaque role ID")
    name: str
    member_ids: List[str] = Field(default_factory=list, description="User IDs in membership order")
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Operators
# ============================================================================

class UserOperator(BaseModel):
    """Step bound to one specific user"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["User"] = "User"
    user_id: str


class RoleOperator(BaseModel):
    """Step bound to one member of a role"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Role"] = "Role"
    role_id: str


class NoOperator(BaseModel):
    """Step with no operator; the requester acts on it"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["None"] = "None"


Operator = Annotated[
    Union[UserOperator, RoleOperator, NoOperator],
    Field(discriminator="type")
]


# ============================================================================
# Field Defaults
# ============================================================================

class StaticDefault(BaseModel):
    """Literal default value"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Static"] = "Static"
    content: Any = None


class DynamicDefaultRef(BaseModel):
    """Pointer to an answer given in another form"""
    model_config = ConfigDict(extra="forbid")

    form_id: str = Field(..., description="Referenced form")
    flow_id: Optional[str] = Field(None, description="Restrict lookup to this schema step")
    field_key: str = Field(..., description="Key of the referenced field")
    value: Any = Field(None, description="Fallback when no answer is found")


class DynamicDefault(BaseModel):
    """Default resolved from an earlier answer"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Dynamic"] = "Dynamic"
    content: DynamicDefaultRef


FieldDefault = Annotated[
    Union[StaticDefault, DynamicDefault],
    Field(discriminator="type")
]


# ============================================================================
# Field Defines
# ============================================================================

class ChoiceOption(BaseModel):
    """Option for single/multiple choice fields"""
    model_config = ConfigDict(extra="forbid")

    text: str
    value: OptionValue


class SingleLineTextDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["SingleLineText"] = "SingleLineText"
    max_texts: int = Field(..., ge=1)
    text_type: TextType = Field(default=TextType.STRING)
    default: Optional[FieldDefault] = None


class MultiLineTextDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["MultiLineText"] = "MultiLineText"
    max_texts: int = Field(..., ge=1)
    max_lines: int = Field(..., ge=1)
    default: Optional[FieldDefault] = None


class SingleChoiceDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["SingleChoice"] = "SingleChoice"
    options: List[ChoiceOption] = Field(default_factory=list)
    default: Optional[FieldDefault] = None


class MultipleChoiceDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["MultipleChoice"] = "MultipleChoice"
    options: List[ChoiceOption] = Field(default_factory=list)
    max_options: int = Field(default=1)
    is_checkbox: bool = Field(default=False, description="Rendering hint only")
    default: Optional[FieldDefault] = None


class BoolDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["Bool"] = "Bool"
    default: Optional[FieldDefault] = None


class ImageDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["Image"] = "Image"
    max_size: int = Field(..., ge=1, description="Bytes")
    min_width: Optional[int] = None
    max_width: Optional[int] = None
    min_height: Optional[int] = None
    max_height: Optional[int] = None
    mimes: List[str] = Field(default_factory=list)
    default: Optional[FieldDefault] = None


class FileDefine(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["File"] = "File"
    max_size: int = Field(..., ge=1, description="Bytes")
    mimes: List[str] = Field(default_factory=list)
    default: Optional[FieldDefault] = None


class IfEqualDefine(BaseModel):
    """Opens a conditional block keyed by `key`"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Literal["IfEqual"] = "IfEqual"
    key: str
    from_: FieldDefault = Field(..., alias="from")
    value: List[Union[ConditionValue, List[ConditionValue]]] = Field(default_factory=list)


class IfEndDefine(BaseModel):
    """Closes the innermost block keyed by `key`"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["IfEnd"] = "IfEnd"
    key: str


FieldDefine = Annotated[
    Union[
        SingleLineTextDefine, MultiLineTextDefine, SingleChoiceDefine,
        MultipleChoiceDefine, BoolDefine, ImageDefine, FileDefine,
        IfEqualDefine, IfEndDefine
    ],
    Field(discriminator="type")
]


class FieldDefinition(BaseModel):
    """Form field (or IfEqual/IfEnd marker) definition"""
    model_config = ConfigDict(extra="forbid")

    field_id: str = Field(default_factory=generate_field_id)
    key: str = Field(..., min_length=1, description="Answer key")
    name_zh: str = ""
    name_en: str = ""
    description_zh: str = ""
    description_en: str = ""
    required: bool = False
    editable: bool = Field(default=True, description="Non-editable fields store their default")
    define: FieldDefine

    @property
    def field_type(self) -> FieldType:
        return FieldType(self.define.type)

    @property
    def is_marker(self) -> bool:
        return self.field_type.is_marker


# ============================================================================
# Step Modules
# ============================================================================

class FormDefinition(BaseModel):
    """Form module of a schema step"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Form"] = "Form"
    form_id: str = Field(default_factory=generate_form_id)
    expired_at: Optional[datetime] = Field(None, description="Submissions rejected after this instant")
    fields: List[FieldDefinition] = Field(default_factory=list)

    # Compiled block tree, filled by the form engine on first use
    _layout: Any = PrivateAttr(default=None)


class ReviewDefinition(BaseModel):
    """Review module of a schema step"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Review"] = "Review"
    review_id: str = Field(default_factory=generate_review_id)
    restarted: bool = Field(default=False, description="Rejection resets the whole ticket")


StepModule = Annotated[
    Union[FormDefinition, ReviewDefinition],
    Field(discriminator="type")
]


# ============================================================================
# Ticket Schema
# ============================================================================

class SchemaFlowStep(BaseModel):
    """One step of a published schema"""
    model_config = ConfigDict(extra="ignore")

    flow_id: str = Field(default_factory=generate_flow_id)
    order: int = Field(..., ge=0)
    name_zh: str = ""
    name_en: str = ""
    operator: Operator = Field(default_factory=NoOperator)
    module: StepModule


class FlowStepDraft(BaseModel):
    """Step as submitted for publication; order may be omitted"""
    model_config = ConfigDict(extra="forbid")

    flow_id: str = Field(default_factory=generate_flow_id)
    order: Optional[int] = Field(None, ge=0)
    name_zh: str = ""
    name_en: str = ""
    operator: Operator = Field(default_factory=NoOperator)
    module: StepModule


class SchemaDraft(BaseModel):
    """Unpublished ticket schema"""
    model_config = ConfigDict(extra="forbid")

    title_zh: str = ""
    title_en: str = ""
    description_zh: str = ""
    description_en: str = ""
    manager_ids: List[str] = Field(default_factory=list)
    flows: List[FlowStepDraft] = Field(default_factory=list)


class TicketSchema(BaseModel):
    """Published ticket schema (immutable)"""
    model_config = ConfigDict(extra="ignore")

    schema_id: str = Field(..., description="Unique schema ID")
    title_zh: str = ""
    title_en: str = ""
    description_zh: str = ""
    description_en: str = ""
    manager_ids: List[str] = Field(default_factory=list)
    published_by: str
    flows: List[SchemaFlowStep] = Field(..., min_length=1)
    created_at: datetime
    updated_at: datetime

    def get_flow(self, flow_id: str) -> Optional[SchemaFlowStep]:
        for flow in self.flows:
            if flow.flow_id == flow_id:
                return flow
        return None

    def is_manager(self, user_id: str) -> bool:
        return user_id == self.published_by or user_id in self.manager_ids


# ============================================================================
# Submissions
# ============================================================================

class FormSubmission(BaseModel):
    """Answers for a form step"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Form"] = "Form"
    value: Dict[str, Any] = Field(default_factory=dict)


class ReviewSubmission(BaseModel):
    """Decision for a review step"""
    model_config = ConfigDict(extra="forbid")

    type: Literal["Review"] = "Review"
    approved: StrictBool
    comment: Optional[str] = None


FlowSubmission = Annotated[
    Union[FormSubmission, ReviewSubmission],
    Field(discriminator="type")
]


# ============================================================================
# Ticket Runtime Models
# ============================================================================

class EmptyFlowValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["None"] = "None"


class FormFlowValue(BaseModel):
    """Stored answers of a finished form step"""
    model_config = ConfigDict(extra="ignore")

    type: Literal["Form"] = "Form"
    value: Dict[str, Any] = Field(default_factory=dict)
    submitted_by: str
    submitted_at: datetime


class ReviewFlowValue(BaseModel):
    """Recorded review decision"""
    model_config = ConfigDict(extra="ignore")

    type: Literal["Review"] = "Review"
    approved: bool
    comment: Optional[str] = None
    submitted_by: str
    submitted_at: datetime


FlowValue = Annotated[
    Union[EmptyFlowValue, FormFlowValue, ReviewFlowValue],
    Field(discriminator="type")
]


class TicketFlowItem(BaseModel):
    """Runtime state of one schema step inside a ticket"""
    model_config = ConfigDict(extra="ignore")

    flow_item_id: str = Field(..., description="Unique flow item ID")
    ticket_id: str
    flow_id: str = Field(..., description="Reference to schema step")
    order: int
    user_id: Optional[str] = Field(None, description="Bound operator; None means the requester")
    finished: bool = False
    value: FlowValue = Field(default_factory=EmptyFlowValue)
    review_history: List[ReviewFlowValue] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Ticket(BaseModel):
    """Ticket instance (runtime)"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_assignment=True)

    ticket_id: str = Field(..., description="Unique ticket ID")
    schema_id: str
    title: str
    requester_id: str
    status: TicketStatus = Field(default=TicketStatus.PENDING)
    finished: bool = False
    halted: bool = Field(default=False, description="Blocked by a non-restart rejection")
    restart_count: int = 0
    flows: List[TicketFlowItem] = Field(default_factory=list, description="One item per schema step, in order")
    applied_keys: List[str] = Field(default_factory=list, description="Recent idempotency keys")
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None
    version: int = Field(default=1, description="Optimistic concurrency version")

    def current_item(self) -> Optional[TicketFlowItem]:
        """First unfinished flow item"""
        for item in self.flows:
            if not item.finished:
                return item
        return None


# ============================================================================
# Blob
# ============================================================================

class BlobRef(BaseModel):
    """Metadata of an uploaded file or image"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    blob_id: str
    kind: BlobKind
    mime: str
    size: int = Field(..., ge=0, description="Bytes")
    width: Optional[int] = None
    height: Optional[int] = None
    uploaded_by: str
    created_at: datetime


# ============================================================================
# Audit Event
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    audit_event_id: str
    event_type: AuditEventType
    actor_id: str
    schema_id: Optional[str] = None
    ticket_id: Optional[str] = None
    flow_item_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    correlation_id: Optional[str] = None
