# /app/models/student_model.py

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from .common_model import CamelModel


class StudentStatus(str, Enum):
    STUDYING = "studying"
    GRADUATED = "graduated"
    TRANSFERRED = "transferred"
    DROPPED_OUT = "dropped_out"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class StudentBase(CamelModel):
    """Fields shared by create and import rows."""
    student_code: str = Field(..., min_length=1, description="Code unique within the school.")
    full_name: str = Field(..., min_length=2)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    academic_year: Optional[str] = None

    @field_validator("student_code")
    @classmethod
    def normalise_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, value: Optional[date]) -> Optional[date]:
        if value is not None and value > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return value


class StudentCreate(StudentBase):
    class_id: Optional[str] = Field(default=None, description="Leave empty for an unassigned student.")


class StudentUpdate(CamelModel):
    """
    Partial update. Changing `class_id` moves the student with the same
    capacity checks as a transfer.
    """
    student_code: Optional[str] = None
    full_name: Optional[str] = Field(default=None, min_length=2)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    academic_year: Optional[str] = None
    status: Optional[StudentStatus] = None
    class_id: Optional[str] = None

    @field_validator("student_code")
    @classmethod
    def normalise_code(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value


class TransferRecordRead(CamelModel):
    from_class_id: Optional[str] = None
    to_class_id: str
    transfer_date: datetime
    reason: Optional[str] = None
    transferred_by: Optional[str] = None


class Student(CamelModel):
    """The full representation of a Student resource, as returned by the API."""
    id: str
    school_id: str
    student_code: str
    full_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    class_id: Optional[str] = None
    class_workspace_id: Optional[str] = None
    academic_year: Optional[str] = None
    status: str
    transfer_history: List[TransferRecordRead] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class TransferRequest(CamelModel):
    student_id: Optional[str] = None
    new_class_id: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class BulkImportRequest(CamelModel):
    students: List[StudentCreate] = Field(..., min_length=1, max_length=1000)


class BulkImportRowError(CamelModel):
    row: int
    student_code: Optional[str] = None
    code: str
    message: str


class BulkImportResult(CamelModel):
    created: int
    failed: int
    errors: List[BulkImportRowError]


class ClassCount(CamelModel):
    class_id: Optional[str] = None
    class_name: str
    count: int


class StudentStatistics(CamelModel):
    """Headcounts for one school, optionally narrowed to a year or a class."""
    total: int
    by_status: Dict[str, int]
    by_gender: Dict[str, int]
    by_class: List[ClassCount]
