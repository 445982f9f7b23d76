# /app/models/score_model.py

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from .common_model import CamelModel


class ScoreType(str, Enum):
    ORAL = "oral"
    FIFTEEN_MINUTE = "15min"
    ONE_PERIOD = "1period"
    MIDTERM = "midterm"
    FINAL = "final"


class SubjectCreate(CamelModel):
    subject_code: str = Field(..., min_length=1)
    subject_name: str = Field(..., min_length=2)
    coefficient: float = Field(default=1, ge=1)
    description: Optional[str] = None


class SubjectRead(CamelModel):
    id: str
    subject_code: str
    subject_name: str
    coefficient: float
    description: Optional[str] = None
    is_active: bool


class ScoreEntry(CamelModel):
    student_id: str
    score: float = Field(..., ge=0, le=10)
    note: Optional[str] = None


class EnterScoresRequest(CamelModel):
    class_id: str
    subject_id: str
    semester: int = Field(..., ge=1, le=3)
    academic_year: str
    score_type: ScoreType
    scores: List[ScoreEntry] = Field(..., min_length=1)


class EnterScoresResult(CamelModel):
    created: int
    updated: int
    skipped: List[Dict[str, str]]


class ScoreUpdate(CamelModel):
    score: float = Field(..., ge=0, le=10)
    note: Optional[str] = None


class CohortRequest(CamelModel):
    """Identifies the cohort a lock or unlock applies to."""
    class_id: str
    subject_id: str
    semester: int = Field(..., ge=1, le=3)
    academic_year: str
    score_type: Optional[ScoreType] = None


class CohortLockResult(CamelModel):
    modified: int
    is_locked: bool


class ScoreRead(CamelModel):
    id: str
    student_id: str
    class_id: str
    subject_id: str
    semester: int
    academic_year: str
    score_type: str
    score: float
    coefficient: int
    note: Optional[str] = None
    teacher_id: Optional[str] = None
    entered_at: datetime
    is_locked: bool
    locked_by: Optional[str] = None
    locked_at: Optional[datetime] = None


class RankingRow(CamelModel):
    rank: Optional[int] = None
    student_id: str
    student_code: str
    full_name: str
    average: Optional[float] = None
    classification: str


class SubjectUpdate(CamelModel):
    subject_code: Optional[str] = Field(default=None, min_length=1)
    subject_name: Optional[str] = Field(default=None, min_length=2)
    coefficient: Optional[float] = Field(default=None, ge=1)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class StudentScores(CamelModel):
    """A row of the class score sheet: one student and every score of the cohort."""
    student_id: str
    student_code: str
    full_name: str
    scores: List[ScoreRead]
    average: Optional[float] = None


class TranscriptSubject(CamelModel):
    subject_id: str
    subject_code: str
    subject_name: str
    coefficient: float
    scores: List[ScoreRead]
    average: Optional[float] = None


class Transcript(CamelModel):
    student_id: str
    student_code: str
    full_name: str
    class_id: Optional[str] = None
    semester: int
    academic_year: str
    subjects: List[TranscriptSubject]
    semester_average: Optional[float] = None
    classification: str


class ScoreTypeStats(CamelModel):
    score_type: str
    count: int
    average: float
    max: float
    min: float


class ScoreBand(CamelModel):
    """Scores in [low, high); the top band also holds 10."""
    low: float
    high: float
    count: int
    students: int


class ScoreStatistics(CamelModel):
    total_scores: int
    by_score_type: List[ScoreTypeStats]
    distribution: List[ScoreBand]
    subject_averages: Optional[List[RankingRow]] = None
    classification_distribution: Optional[Dict[str, int]] = None
