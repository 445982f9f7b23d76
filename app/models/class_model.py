# /app/models/class_model.py

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import Field

from .common_model import CamelModel


class ClassStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class ClassCreate(CamelModel):
    name: str = Field(..., min_length=2, description="Display name, e.g. '10A1'.")
    class_code: str = Field(..., min_length=1, description="Code unique within the school.")
    grade: int = Field(..., ge=10, le=12)
    academic_year: str = Field(..., pattern=r"^\d{4}-\d{4}$", examples=["2025-2026"])
    homeroom_teacher_id: Optional[str] = None
    capacity: int = Field(default=40, ge=1)
    classroom: Optional[str] = None
    status: ClassStatus = ClassStatus.ACTIVE
    notes: Optional[str] = None


class ClassUpdate(CamelModel):
    """Partial update. The enrolment counter is deliberately not part of it."""
    name: Optional[str] = Field(default=None, min_length=2)
    class_code: Optional[str] = Field(default=None, min_length=1)
    grade: Optional[int] = Field(default=None, ge=10, le=12)
    academic_year: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    homeroom_teacher_id: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    classroom: Optional[str] = None
    status: Optional[ClassStatus] = None
    notes: Optional[str] = None


class ClassRead(CamelModel):
    id: str
    school_id: str
    name: str
    class_code: str
    grade: int
    academic_year: str
    homeroom_teacher_id: Optional[str] = None
    capacity: int
    current_students: int
    classroom: Optional[str] = None
    status: str
    notes: Optional[str] = None
    workspace_id: Optional[str] = None
    workspace_code: Optional[str] = None
    workspace_path: Optional[str] = None
    created_at: Optional[datetime] = None


class ClassStatistics(CamelModel):
    class_id: str
    capacity: int
    current_students: int
    available_seats: int
    by_gender: Dict[str, int]
    by_status: Dict[str, int]
