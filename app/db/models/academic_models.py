# /app/db/models/academic_models.py

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base


class Subject(Base):
    __tablename__ = "subjects"
    __table_args__ = (
        UniqueConstraint("school_id", "subject_code", name="uq_subjects_school_code"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)
    subject_code = Column(String, nullable=False)
    subject_name = Column(String, nullable=False)
    coefficient = Column(Float, nullable=False, default=1)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Score(Base):
    """
    A single mark. The unique constraint defines the record a bulk entry
    upserts into; `is_locked` freezes `score` and `note` until an admin
    unlocks the cohort. `version` is the optimistic lock that makes a
    concurrent entry and a concurrent lock collide instead of overwrite.
    """
    __tablename__ = "scores"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "class_id", "subject_id", "semester", "academic_year", "score_type",
            name="uq_scores_cohort_entry",
        ),
        CheckConstraint("score >= 0 AND score <= 10", name="ck_scores_range"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)
    student_id = Column(String, ForeignKey("students.id"), nullable=False, index=True)
    class_id = Column(String, ForeignKey("classes.id"), nullable=False, index=True)
    subject_id = Column(String, ForeignKey("subjects.id"), nullable=False, index=True)
    semester = Column(Integer, nullable=False)
    academic_year = Column(String, nullable=False)
    score_type = Column(String, nullable=False)

    score = Column(Float, nullable=False)
    coefficient = Column(Integer, nullable=False, default=1)
    note = Column(String, nullable=True)
    teacher_id = Column(String, ForeignKey("users.id"), nullable=True)
    entered_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    is_locked = Column(Boolean, nullable=False, default=False)
    locked_by = Column(String, nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    subject = relationship("Subject")
    student = relationship("Student")

    __mapper_args__ = {"version_id_col": version}
