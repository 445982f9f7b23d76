# /app/db/models/class_student_models.py

"""
This module defines the SQLAlchemy ORM models for the `Class` and `Student`
entities, plus the append-only transfer log kept for every student.
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base


class Class(Base):
    """
    A homeroom class inside a school.

    `current_students` is only ever changed by enrollment, transfer and
    student deletion. `version` is an optimistic lock: two transactions that
    both read the same version cannot both write, the loser gets a
    StaleDataError and is retried by the transaction wrapper.
    """
    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("school_id", "class_code", name="uq_classes_school_code"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)

    class_code = Column(String, nullable=False)
    name = Column(String, nullable=False, index=True)
    grade = Column(Integer, nullable=False)
    academic_year = Column(String, nullable=False)
    homeroom_teacher_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    capacity = Column(Integer, nullable=False, default=40)
    current_students = Column(Integer, nullable=False, default=0)
    classroom = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    notes = Column(String, nullable=True)

    # --- Denormalised workspace reference ---
    workspace_id = Column(String, nullable=True, index=True)
    workspace_code = Column(String, nullable=True)
    workspace_path = Column(String, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    homeroom_teacher = relationship("User", foreign_keys=[homeroom_teacher_id])
    students = relationship("Student", back_populates="class_", foreign_keys="Student.class_id")

    __mapper_args__ = {"version_id_col": version}


class Student(Base):
    """
    A student record. `class_id` may be empty for unassigned students; when it
    is set, `class_workspace_id` always points at that class's workspace.
    """
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("school_id", "student_code", name="uq_students_school_code"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)

    student_code = Column(String, nullable=False)
    full_name = Column(String, nullable=False, index=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String, nullable=True)
    address = Column(String, nullable=True)
    parent_name = Column(String, nullable=True)
    parent_phone = Column(String, nullable=True)

    class_id = Column(String, ForeignKey("classes.id"), nullable=True, index=True)
    class_workspace_id = Column(String, nullable=True, index=True)
    academic_year = Column(String, nullable=True)
    status = Column(String, nullable=False, default="studying")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    class_ = relationship("Class", back_populates="students", foreign_keys=[class_id])
    transfer_history = relationship(
        "TransferRecord",
        back_populates="student",
        order_by="TransferRecord.transfer_date",
        cascade="all, delete-orphan",
    )


class TransferRecord(Base):
    """One entry of a student's transfer log. Rows are inserted, never updated."""
    __tablename__ = "student_transfers"

    id = Column(String, primary_key=True, index=True)
    student_id = Column(String, ForeignKey("students.id"), nullable=False, index=True)
    from_class_id = Column(String, nullable=True)
    to_class_id = Column(String, nullable=False)
    transfer_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    reason = Column(String, nullable=True)
    transferred_by = Column(String, nullable=True)

    student = relationship("Student", back_populates="transfer_history")
