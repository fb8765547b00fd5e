"""
Database Schemas for School Admin

Each Pydantic model corresponds to a MongoDB collection:
- Department -> "department"
- Class -> "class"
- Faculty -> "faculty"
- Student -> "student"
- User -> "user"
- Fee -> "fee"
- Session -> "session"

The entity models double as create payloads; the *Update models carry the
same fields, all optional, for merge-style updates. References to other
collections are id strings.
"""

import re
from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, ValidationInfo
from typing import ClassVar, FrozenSet, Optional, Literal, Any
from datetime import date, datetime

PHONE_PATTERN = r"^[1-9][0-9]{8,14}$"
PHONE_ERROR = "Please enter a valid phone number (9-15 digits, numbers only, no plus sign)"

STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-zA-Z])(?=.*\d)(?=.*[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]).{8,}$")
PASSWORD_ERROR = "Password must be at least 8 characters long and include at least one letter, one number, and one symbol."

STUDENT_ID_ERROR = "Student ID is required for students"

Status = Literal["active", "inactive"]
Title = Literal["admin", "teacher", "parent", "officer", "student"]
FeeStatus = Literal["paid", "partial", "unpaid"]

COLLECTIONS = ["department", "class", "faculty", "student", "user", "fee", "session"]


class SchoolModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


def check_password_strength(password: str) -> str:
    if not STRONG_PASSWORD_RE.match(password):
        raise ValueError(PASSWORD_ERROR)
    return password


def coerce_datetime(value: Any) -> Any:
    """Accept `date`, `YYYY-MM-DD` and full ISO strings; Mongo stores datetimes only."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and len(value.strip()) == 10:
        try:
            d = date.fromisoformat(value.strip())
        except ValueError:
            return value
        return datetime(d.year, d.month, d.day)
    return value


def wall_time(value: Optional[datetime]) -> Optional[datetime]:
    """Keep the wall-clock reading of an offset-aware datetime, drop the offset."""
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


# Academic structure
class Department(SchoolModel):
    name: str = Field(..., min_length=1, description="Unique display label")


class DepartmentUpdate(SchoolModel):
    name: Optional[str] = Field(None, min_length=1)


class Class(SchoolModel):
    departmentId: str = Field(..., min_length=1, description="Department id")
    semester: int = Field(..., ge=1)
    classMode: str = Field(..., min_length=1, description="e.g. morning, evening")
    type: str = Field(..., min_length=1)
    status: Status = "active"


class ClassUpdate(SchoolModel):
    departmentId: Optional[str] = Field(None, min_length=1)
    semester: Optional[int] = Field(None, ge=1)
    classMode: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = Field(None, min_length=1)
    status: Optional[Status] = None


class Faculty(SchoolModel):
    name: str = Field(..., min_length=1)
    departmentId: str = Field(..., min_length=1, description="Department id")
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    status: Status = "active"


class FacultyUpdate(SchoolModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"email", "phone"})

    name: Optional[str] = Field(None, min_length=1)
    departmentId: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    status: Optional[Status] = None


# People
class Student(SchoolModel):
    name: str = Field(..., min_length=1)
    gender: str = Field(..., min_length=1)
    parentPhone: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    studentId: int = Field(..., ge=1, description="Display number, distinct from the document id")
    classId: str = Field(..., min_length=1, description="Class id")
    status: Status = "active"


class StudentUpdate(SchoolModel):
    name: Optional[str] = Field(None, min_length=1)
    gender: Optional[str] = Field(None, min_length=1)
    parentPhone: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    studentId: Optional[int] = Field(None, ge=1)
    classId: Optional[str] = Field(None, min_length=1)
    status: Optional[Status] = None


class User(SchoolModel):
    fullName: str = Field(..., min_length=1)
    email: EmailStr = Field(..., description="Unique email address")
    phone: str = Field(..., pattern=PHONE_PATTERN)
    title: Title = Field(..., description="User role")
    status: Status = "active"
    password: str = Field(..., description="Plain on the way in, bcrypt hash at rest")
    studentId: Optional[int] = Field(None, validate_default=True, description="Required when title is student")

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_digits(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("password")
    @classmethod
    def _strong_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("studentId")
    @classmethod
    def _student_needs_id(cls, v: Optional[int], info: ValidationInfo) -> Optional[int]:
        if info.data.get("title") == "student" and v is None:
            raise ValueError(STUDENT_ID_ERROR)
        return v


class UserUpdate(SchoolModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"studentId"})

    fullName: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    title: Optional[Title] = None
    status: Optional[Status] = None
    # empty string means "keep the current password"
    password: Optional[str] = None
    # title/studentId pairing is checked against the merged document
    studentId: Optional[int] = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_digits(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("password")
    @classmethod
    def _strong_password(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        return check_password_strength(v)


# Finance
class Fee(SchoolModel):
    studentId: str = Field(..., min_length=1, description="Student document id")
    financeType: str = Field(..., min_length=1, description="Free-text charge category")
    amount: float = Field(..., ge=0)
    amountPaid: float = Field(0, ge=0)
    balance: Optional[float] = None
    status: Optional[FeeStatus] = None
    description: str = ""
    date: datetime

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        return coerce_datetime(v)

    @field_validator("date")
    @classmethod
    def _local_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return wall_time(v)


class FeeUpdate(SchoolModel):
    studentId: Optional[str] = Field(None, min_length=1)
    financeType: Optional[str] = Field(None, min_length=1)
    amount: Optional[float] = Field(None, ge=0)
    amountPaid: Optional[float] = Field(None, ge=0)
    balance: Optional[float] = None
    status: Optional[FeeStatus] = None
    description: Optional[str] = None
    date: Optional[datetime] = None

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        return coerce_datetime(v)

    @field_validator("date")
    @classmethod
    def _local_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return wall_time(v)


def derive_fee_status(amount: float, amount_paid: float) -> str:
    if amount > 0 and amount_paid >= amount:
        return "paid"
    if amount_paid > 0:
        return "partial"
    return "unpaid"


# Auth
class LoginRequest(SchoolModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class Session(BaseModel):
    token: str
    userId: str
    expiresAt: datetime
