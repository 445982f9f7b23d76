# /app/models/school_model.py

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common_model import CamelModel


class SchoolSettings(CamelModel):
    academic_year_start: int = 9
    semesters_per_year: int = 2
    grades_offered: List[int] = Field(default_factory=lambda: [10, 11, 12])
    currency: str = "VND"
    timezone: str = "Asia/Ho_Chi_Minh"


class SchoolRead(CamelModel):
    id: str
    school_name: str
    school_code: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    principal_name: Optional[str] = None
    total_students: int = 0
    total_teachers: int = 0
    total_classes: int = 0
    is_active: bool
    subscription_plan: str
    subscription_expires_at: datetime
    remaining_days: Optional[int] = None
    settings: SchoolSettings
    workspace_id: Optional[str] = None
    workspace_code: Optional[str] = None
    workspace_path: Optional[str] = None


class SchoolSettingsPatch(CamelModel):
    academic_year_start: Optional[int] = Field(default=None, ge=1, le=12)
    semesters_per_year: Optional[int] = Field(default=None, ge=1, le=3)
    grades_offered: Optional[List[int]] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None


class SchoolUpdate(CamelModel):
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    principal_name: Optional[str] = None
    settings: Optional[SchoolSettingsPatch] = None
