# /app/db/models/attendance_models.py

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base


class Attendance(Base):
    """
    One student's presence in one class session. `period` is 0 when the mark
    covers the whole session, so the unique key also holds for those rows.
    """
    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", "date", "session", "period", name="uq_attendances_mark"),
        CheckConstraint("period >= 0 AND period <= 10", name="ck_attendances_period"),
        Index("ix_attendances_class_date", "class_id", "date"),
        Index("ix_attendances_school_date", "school_id", "date"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False)
    student_id = Column(String, ForeignKey("students.id"), nullable=False, index=True)
    class_id = Column(String, ForeignKey("classes.id"), nullable=False)

    date = Column(Date, nullable=False)
    session = Column(String, nullable=False, default="full_day")
    period = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False)
    note = Column(String, nullable=True)
    marked_by = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    student = relationship("Student")
    class_ = relationship("Class")
