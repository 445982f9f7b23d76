# /app/services/database_helpers/academic_repository_sql.py

"""Queries for subjects and scores."""

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.db.models.academic_models import Score, Subject


class AcademicRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    # --- Subject Methods ---

    def get_subject_by_id(self, subject_id: str, school_id: str) -> Optional[Subject]:
        if not subject_id:
            return None
        return self.db.query(Subject).filter(Subject.id == subject_id, Subject.school_id == school_id).first()

    def get_subject_by_code(self, school_id: str, subject_code: str) -> Optional[Subject]:
        return (
            self.db.query(Subject)
            .filter(Subject.school_id == school_id, Subject.subject_code == subject_code)
            .first()
        )

    def list_subjects(self, school_id: str, active_only: bool = False) -> List[Subject]:
        query = self.db.query(Subject).filter(Subject.school_id == school_id)
        if active_only:
            query = query.filter(Subject.is_active.is_(True))
        return query.order_by(Subject.subject_name).all()

    def add_subject(self, subject: Subject) -> Subject:
        self.db.add(subject)
        self.db.flush()
        return subject

    # --- Score Methods ---

    def get_score_by_id(self, score_id: str, school_id: str) -> Optional[Score]:
        return self.db.query(Score).filter(Score.id == score_id, Score.school_id == school_id).first()

    def get_cohort_scores(
        self,
        school_id: str,
        class_id: str,
        subject_id: str,
        semester: int,
        academic_year: str,
        score_type: Optional[str] = None,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[Score]:
        """All scores of one (class, subject, semester, year) cohort, optionally narrowed."""
        query = self.db.query(Score).filter(
            Score.school_id == school_id,
            Score.class_id == class_id,
            Score.subject_id == subject_id,
            Score.semester == semester,
            Score.academic_year == academic_year,
        )
        if score_type:
            query = query.filter(Score.score_type == score_type)
        if student_ids is not None:
            query = query.filter(Score.student_id.in_(list(student_ids)))
        return query.all()

    def list_scores(
        self,
        school_id: str,
        class_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        student_id: Optional[str] = None,
        semester: Optional[int] = None,
        academic_year: Optional[str] = None,
        score_type: Optional[str] = None,
    ) -> List[Score]:
        query = self.db.query(Score).filter(Score.school_id == school_id)
        if class_id:
            query = query.filter(Score.class_id == class_id)
        if subject_id:
            query = query.filter(Score.subject_id == subject_id)
        if student_id:
            query = query.filter(Score.student_id == student_id)
        if semester is not None:
            query = query.filter(Score.semester == semester)
        if academic_year:
            query = query.filter(Score.academic_year == academic_year)
        if score_type:
            query = query.filter(Score.score_type == score_type)
        return query.order_by(Score.entered_at.desc()).all()

    def recent_scores_for_student(self, school_id: str, student_id: str, limit: int = 10) -> List[Score]:
        return (
            self.db.query(Score)
            .filter(Score.school_id == school_id, Score.student_id == student_id)
            .order_by(Score.entered_at.desc())
            .limit(limit)
            .all()
        )

    def add_score(self, score: Score) -> Score:
        self.db.add(score)
        self.db.flush()
        return score

    def delete_score(self, score: Score) -> None:
        self.db.delete(score)
        self.db.flush()

    def delete_scores_for_student(self, school_id: str, student_id: str) -> int:
        scores = self.db.query(Score).filter(Score.school_id == school_id, Score.student_id == student_id).all()
        for score in scores:
            self.db.delete(score)
        self.db.flush()
        return len(scores)
