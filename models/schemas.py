"""
Request and response shapes for the forms API.

Wire names are camelCase (``createdAt``, ``formId``, ``driveFileId``,
``submittedAt``); snake_case names are accepted on input as well.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, get_args

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

FieldType = Literal["text", "email", "number", "textarea", "select", "checkbox"]

FIELD_TYPES = get_args(FieldType)


def now_iso() -> str:
    """UTC timestamp in the stored form, e.g. ``2024-05-01T10:00:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FormFieldSchema(WireModel):
    id: str
    type: FieldType
    label: str = ""
    required: bool = False
    options: Optional[List[str]] = None


def _check_unique_ids(fields):
    seen = set()
    for field in fields:
        if field.id in seen:
            raise ValueError(f"duplicate field id '{field.id}'")
        seen.add(field.id)
    return fields


FieldList = Annotated[List[FormFieldSchema], AfterValidator(_check_unique_ids)]


class FormCreate(WireModel):
    title: str
    description: Optional[str] = None
    fields: FieldList = []
    created_at: Optional[str] = None


class FormUpdate(WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[FieldList] = None
    created_at: Optional[str] = None


class FormOut(WireModel):
    id: int
    title: str
    description: Optional[str] = None
    fields: List[FormFieldSchema]
    created_at: str


class SubmissionOut(WireModel):
    id: int
    form_id: int
    data: Dict[str, Any]
    drive_file_id: Optional[str] = None
    submitted_at: str


class SubmissionUpdate(WireModel):
    drive_file_id: Optional[str] = None


class SubmissionPage(WireModel):
    total_count: int
    page: int
    limit: int
    submissions: List[SubmissionOut]


class LoginBase(BaseModel):
    username: str
    password: str


class UserOut(WireModel):
    id: int
    username: str


class LoginResponse(BaseModel):
    token: str
    user: UserOut
