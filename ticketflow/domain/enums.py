"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class TicketStatus(str, Enum):
    """Global ticket status"""
    PENDING = "Pending"  # Created or restarted, step 0 not acted on yet
    IN_PROGRESS = "InProgress"
    FINISHED = "Finished"


class ModuleType(str, Enum):
    """What a schema flow step asks for"""
    FORM = "Form"
    REVIEW = "Review"


class FlowValueType(str, Enum):
    """What a ticket flow item currently holds"""
    NONE = "None"
    FORM = "Form"
    REVIEW = "Review"


class OperatorType(str, Enum):
    """Who is expected to act on a schema flow step"""
    USER = "User"
    ROLE = "Role"
    NONE = "None"


class FieldType(str, Enum):
    """Closed set of form field defines"""
    SINGLE_LINE_TEXT = "SingleLineText"
    MULTI_LINE_TEXT = "MultiLineText"
    SINGLE_CHOICE = "SingleChoice"
    MULTIPLE_CHOICE = "MultipleChoice"
    BOOL = "Bool"
    IMAGE = "Image"
    FILE = "File"
    IF_EQUAL = "IfEqual"
    IF_END = "IfEnd"

    @property
    def is_marker(self) -> bool:
        """IfEqual/IfEnd delimit conditional blocks and are never answered"""
        return self in (FieldType.IF_EQUAL, FieldType.IF_END)


class TextType(str, Enum):
    """Format constraint for single line text"""
    STRING = "string"
    EMAIL = "email"
    URL = "url"


class DefaultType(str, Enum):
    """Field default sources"""
    STATIC = "Static"
    DYNAMIC = "Dynamic"


class BlobKind(str, Enum):
    """Uploaded blob kinds"""
    FILE = "file"
    IMAGE = "image"


class FileMime(str, Enum):
    """Whitelisted document types"""
    PDF = "application/pdf"
    DOC = "application/msword"
    DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    XLS = "application/vnd.ms-excel"
    XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    PPT = "application/vnd.ms-powerpoint"
    PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ODT = "application/vnd.oasis.opendocument.text"
    ODS = "application/vnd.oasis.opendocument.spreadsheet"
    ODP = "application/vnd.oasis.opendocument.presentation"
    TXT = "text/plain"
    CSV = "text/csv"


class ImageMime(str, Enum):
    """Whitelisted image types"""
    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"
    WEBP = "image/webp"
    SVG = "image/svg+xml"
    AI = "application/pdf"


class FieldErrorCode(str, Enum):
    """Per-field submission violations"""
    REQUIRED = "required"
    INVALID_TYPE = "invalid_type"
    TEXT_TOO_LONG = "text_too_long"
    TEXT_TOO_MANY_LINES = "text_too_many_lines"
    INVALID_FORMAT = "invalid_format"
    NOT_VALID_CHOICE = "not_valid_choice"
    TOO_MANY_CHOICES = "too_many_choices"
    DUPLICATE_CHOICE = "duplicate_choice"
    NOT_UPLOADED = "not_uploaded"
    INVALID_MIME = "invalid_mime"
    TOO_LARGE = "too_large"
    INVALID_DIMENSIONS = "invalid_dimensions"


class AuditEventType(str, Enum):
    """Types of audit events"""
    PUBLISH_SCHEMA = "PUBLISH_SCHEMA"
    CREATE_TICKET = "CREATE_TICKET"
    SUBMIT_FORM = "SUBMIT_FORM"
    APPROVE = "APPROVE"
    RESTART = "RESTART"
    HALT = "HALT"
    REOPEN = "REOPEN"
    TICKET_FINISHED = "TICKET_FINISHED"
