"""Request and response models for the JSON API and the forms."""
from __future__ import annotations

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Role = Literal["admin", "employee"]


def _required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


def _present(value, label: str):
    # update models: a field may be left out, but not cleared to null
    if value is None:
        raise ValueError(f"{label} cannot be empty")
    return value


def _optional_email(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    if not EMAIL_RE.match(value.strip()):
        raise ValueError("Please enter a valid email address")
    return value.strip()


class LoginCredentials(BaseModel):
    email: str
    password: str


class SignupCredentials(BaseModel):
    name: str
    email: str
    password: str = Field(..., min_length=6)
    confirm_password: str
    role: Role = "employee"

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Name")

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        value = value.strip().lower()
        if not EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address")
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "SignupCredentials":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class ProjectIn(BaseModel):
    name: str = Field(..., max_length=99)
    color: str = "#3B82F6"
    client_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=499)

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Project name")


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=99)
    color: Optional[str] = None
    client_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=499)
    is_archived: Optional[bool] = None
    version: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: Optional[str]) -> str:
        return _required(_present(value, "Project name"), "Project name")

    @field_validator("color", "is_archived")
    @classmethod
    def not_null(cls, value, info):
        return _present(value, info.field_name)


class TaskIn(BaseModel):
    name: str = Field(..., max_length=99)
    project_id: str
    is_billable: bool = False
    hourly_rate: Optional[float] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Task name")

    @field_validator("project_id")
    @classmethod
    def project_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Please select a project")
        return value

    @model_validator(mode="after")
    def billable_needs_rate(self) -> "TaskIn":
        if self.is_billable and (self.hourly_rate is None or self.hourly_rate <= 0):
            raise ValueError("Hourly rate must be greater than 0 for billable tasks")
        return self


class TaskUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=99)
    project_id: Optional[str] = None
    is_billable: Optional[bool] = None
    hourly_rate: Optional[float] = None
    is_archived: Optional[bool] = None
    version: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: Optional[str]) -> str:
        return _required(_present(value, "Task name"), "Task name")

    @field_validator("project_id")
    @classmethod
    def project_required(cls, value: Optional[str]) -> str:
        if value is None or not value.strip():
            raise ValueError("Please select a project")
        return value

    @field_validator("is_billable", "is_archived")
    @classmethod
    def not_null(cls, value, info):
        return _present(value, info.field_name)


class ClientIn(BaseModel):
    name: str = Field(..., max_length=99)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=19)
    address: Optional[str] = Field(None, max_length=199)

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Client name")

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: Optional[str]) -> Optional[str]:
        return _optional_email(value)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=99)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=19)
    address: Optional[str] = Field(None, max_length=199)
    is_archived: Optional[bool] = None
    version: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: Optional[str]) -> str:
        return _required(_present(value, "Client name"), "Client name")

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: Optional[str]) -> Optional[str]:
        return _optional_email(value)

    @field_validator("is_archived")
    @classmethod
    def not_null(cls, value, info):
        return _present(value, info.field_name)


class TagIn(BaseModel):
    name: str = Field(..., max_length=49)
    color: str = "#3B82F6"

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Tag name")


class TagRename(BaseModel):
    name: str = Field(..., max_length=49)
    version: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Tag name")


class TimeEntryIn(BaseModel):
    description: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = Field(..., ge=0, description="Duration in seconds")
    is_billable: bool = True
    tags: List[str] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def description_required(cls, value: str) -> str:
        return _required(value, "Description")


class TimeEntryUpdate(BaseModel):
    description: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=0)
    is_billable: Optional[bool] = None
    tags: Optional[List[str]] = None
    version: Optional[int] = None

    @field_validator("description")
    @classmethod
    def description_required(cls, value: Optional[str]) -> str:
        return _required(_present(value, "Description"), "Description")

    @field_validator("start_time", "duration", "is_billable", "tags")
    @classmethod
    def not_null(cls, value, info):
        return _present(value, info.field_name)


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[Role] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    timezone: Optional[str] = None
    version: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: Optional[str]) -> str:
        return _required(_present(value, "Name"), "Name")

    @field_validator("role", "is_active", "timezone")
    @classmethod
    def not_null(cls, value, info):
        return _present(value, info.field_name)


class RecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version: int


class ProjectOut(RecordOut):
    name: str
    color: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    description: Optional[str] = None
    is_archived: bool
    created_at: datetime
    updated_at: datetime


class TaskOut(RecordOut):
    name: str
    project_id: str
    is_billable: bool
    hourly_rate: Optional[float] = None
    is_archived: bool
    created_at: datetime
    updated_at: datetime


class ClientOut(RecordOut):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_archived: bool
    created_at: datetime
    updated_at: datetime


class TagOut(RecordOut):
    name: str
    color: str
    created_at: datetime


class TimeEntryOut(RecordOut):
    user_id: str
    description: str
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int
    is_billable: bool
    tags: List[str]
    created_at: datetime
    updated_at: datetime


class UserOut(RecordOut):
    name: str
    email: str
    role: str
    hourly_rate: Optional[float] = None
    is_active: bool
    timezone: str
    created_at: datetime
    updated_at: datetime


class SummaryOut(BaseModel):
    period: str
    total_duration: int
    billable_duration: int
    billable_percentage: float
    earnings: float
    entry_count: int
    average_session_length: float
    invalid_entries: int
