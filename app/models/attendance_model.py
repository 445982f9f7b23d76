# /app/models/attendance_model.py

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from .common_model import CamelModel


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT_EXCUSED = "absent_excused"
    ABSENT_UNEXCUSED = "absent_unexcused"
    LATE = "late"
    LEFT_EARLY = "left_early"


ABSENT_STATUSES = (AttendanceStatus.ABSENT_EXCUSED.value, AttendanceStatus.ABSENT_UNEXCUSED.value)


class AttendanceSession(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    FULL_DAY = "full_day"


class MarkEntry(CamelModel):
    student_id: str
    status: AttendanceStatus
    note: Optional[str] = Field(default=None, max_length=500)
    period: Optional[int] = Field(default=None, ge=1, le=10, description="Lesson period; leave empty for the whole session.")


class MarkAttendanceRequest(CamelModel):
    class_id: str
    date: date
    session: AttendanceSession = AttendanceSession.FULL_DAY
    entries: List[MarkEntry] = Field(..., min_length=1)


class MarkResult(CamelModel):
    marked: int
    notified: int = Field(..., description="How many of the marks are absences.")


class AttendanceRead(CamelModel):
    id: str
    student_id: str
    class_id: str
    date: date
    session: str
    period: Optional[int] = None
    status: str
    note: Optional[str] = None
    marked_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("period")
    @classmethod
    def whole_session_has_no_period(cls, value: Optional[int]) -> Optional[int]:
        return value or None


class ClassDayRow(CamelModel):
    """A studying student of the class and their marks for the day, if any."""
    student_id: str
    student_code: str
    full_name: str
    attendance: List[AttendanceRead]


class AttendanceCounts(CamelModel):
    total: int = 0
    present: int = 0
    absent_excused: int = 0
    absent_unexcused: int = 0
    late: int = 0
    left_early: int = 0
    attendance_rate: float = 0


class StudentAttendanceReport(CamelModel):
    student_id: str
    student_code: str
    full_name: str
    class_id: Optional[str] = None
    start_date: date
    end_date: date
    stats: AttendanceCounts
    attendances: List[AttendanceRead]


class StudentAttendanceRow(AttendanceCounts):
    student_id: str
    student_code: str
    full_name: str


class ClassAttendanceReport(CamelModel):
    class_id: str
    class_name: str
    start_date: date
    end_date: date
    report: List[StudentAttendanceRow]


class AttendanceGroup(CamelModel):
    key: str
    name: Optional[str] = None
    total: int
    present: int
    absent: int
    attendance_rate: float


class AttendanceStatistics(CamelModel):
    total: int
    attendance_rate: float
    by_status: Dict[str, int]
    by_class: List[AttendanceGroup]
    daily: List[AttendanceGroup]
