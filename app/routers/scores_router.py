# /app/routers/scores_router.py

"""
Subjects and scores. Correcting marks and locking a cohort need `can_update`;
unlocking is reserved to admins.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import require_admin, require_permission
from app.db.models.user_models import User
from ..models import score_model
from ..services import score_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()

# --- Subjects (/api/subjects) ---

subjects_router = APIRouter()


@subjects_router.get("", response_model=List[score_model.SubjectRead], summary="List Subjects")
def list_subjects(
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.list_subjects(db, current_user.school_id, include_inactive=include_inactive)


@subjects_router.post("", response_model=score_model.SubjectRead, status_code=status.HTTP_201_CREATED, summary="Create a Subject")
def create_subject(
    subject_create: score_model.SubjectCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.create_subject(subject_create, db, current_user)


@subjects_router.get("/{subject_id}", response_model=score_model.SubjectRead, summary="Get a Subject")
def get_subject(
    subject_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.get_subject(db, current_user.school_id, subject_id)


@subjects_router.put("/{subject_id}", response_model=score_model.SubjectRead, summary="Update a Subject")
def update_subject(
    subject_id: str,
    subject_update: score_model.SubjectUpdate,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.update_subject(subject_id, subject_update, db, current_user)


@subjects_router.delete("/{subject_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Deactivate a Subject")
def delete_subject(
    subject_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
):
    score_service.delete_subject(subject_id, db, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- Scores (/api/scores) ---

@router.get("", response_model=List[score_model.ScoreRead], summary="List Scores")
def list_scores(
    class_id: Optional[str] = Query(default=None, alias="classId"),
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    student_id: Optional[str] = Query(default=None, alias="studentId"),
    semester: Optional[int] = Query(default=None, ge=1, le=3),
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    score_type: Optional[score_model.ScoreType] = Query(default=None, alias="scoreType"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.list_scores(
        db, current_user.school_id,
        class_id=class_id,
        subject_id=subject_id,
        student_id=student_id,
        semester=semester,
        academic_year=academic_year,
        score_type=score_type.value if score_type else None,
    )


@router.post("/enter", response_model=score_model.EnterScoresResult, summary="Enter Scores for a Cohort")
def enter_scores(
    request: score_model.EnterScoresRequest,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return score_service.enter_scores(request, db, current_user, cache)


@router.post("/lock", response_model=score_model.CohortLockResult, summary="Lock a Score Cohort")
def lock_scores(
    cohort: score_model.CohortRequest,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.lock_scores(cohort, db, current_user)


@router.post("/unlock", response_model=score_model.CohortLockResult, summary="Unlock a Score Cohort")
def unlock_scores(
    cohort: score_model.CohortRequest,
    current_user: User = Depends(require_admin),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.unlock_scores(cohort, db, current_user)


@router.get("/ranking", response_model=List[score_model.RankingRow], summary="Class Ranking for a Semester")
def class_ranking(
    class_id: str = Query(..., alias="classId"),
    semester: int = Query(..., ge=1, le=3),
    academic_year: str = Query(..., alias="academicYear"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.class_ranking(db, current_user.school_id, class_id, semester, academic_year)


@router.get("/class-sheet", response_model=List[score_model.StudentScores], summary="Score Sheet of a Class for One Subject")
def get_class_scores_by_subject(
    class_id: str = Query(..., alias="classId"),
    subject_id: str = Query(..., alias="subjectId"),
    semester: int = Query(..., ge=1, le=3),
    academic_year: str = Query(..., alias="academicYear"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.get_class_scores_by_subject(db, current_user.school_id, class_id, subject_id, semester, academic_year)


@router.get("/statistics", response_model=score_model.ScoreStatistics, summary="Score Statistics of a Class")
def get_score_statistics(
    class_id: str = Query(..., alias="classId"),
    semester: int = Query(..., ge=1, le=3),
    academic_year: str = Query(..., alias="academicYear"),
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.get_score_statistics(db, current_user.school_id, class_id, semester, academic_year, subject_id=subject_id)


@router.get("/students/{student_id}/transcript", response_model=score_model.Transcript, summary="Semester Transcript of a Student")
def get_student_transcript(
    student_id: str,
    semester: int = Query(..., ge=1, le=3),
    academic_year: str = Query(..., alias="academicYear"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return score_service.get_student_transcript(db, current_user.school_id, student_id, semester, academic_year)


@router.put("/{score_id}", response_model=score_model.ScoreRead, summary="Correct a Score")
def update_score(
    score_id: str,
    score_update: score_model.ScoreUpdate,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return score_service.update_score(score_id, score_update, db, current_user, cache)


@router.delete("/{score_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a Score")
def delete_score(
    score_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    score_service.delete_score(score_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
