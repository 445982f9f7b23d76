# /app/services/score_service.py

"""
Score entry, correction and cohort locking.

A cohort is every score sharing (class, subject, semester, academic year)
and optionally a score type. Locking a cohort flips `is_locked` on each of
its rows in one transaction and bumps their versions, so an entry that read
the rows before the lock collides with it, retries, and then sees the lock.
Locked rows are never overwritten: entry, update and delete all refuse them
with SCORE_LOCKED.
"""

import uuid
from typing import Dict, List, Optional, Tuple

import pandas as pd

from app.core.cache import CacheService, invalidate_user_overview
from app.core.clock import utcnow
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.academic_models import Score, Subject
from ..models import score_model
from . import invariants, tenant_service
from .audit_service import audit_trail, snapshot
from .class_service import get_class
from .database_service import DatabaseService
from .student_service import get_student

logger = get_logger("score_service")

SCORE_COEFFICIENTS = {
    score_model.ScoreType.ORAL.value: 1,
    score_model.ScoreType.FIFTEEN_MINUTE.value: 1,
    score_model.ScoreType.ONE_PERIOD.value: 2,
    score_model.ScoreType.MIDTERM.value: 2,
    score_model.ScoreType.FINAL.value: 3,
}

# Lower bound of each band, checked from the top.
CLASSIFICATION_BANDS = (
    (9.0, "excellent"),
    (8.0, "good"),
    (6.5, "fair"),
    (5.0, "average"),
    (3.5, "weak"),
    (0.0, "poor"),
)

SNAPSHOT_FIELDS = ("student_id", "subject_id", "score_type", "score", "note", "is_locked")
SUBJECT_SNAPSHOT_FIELDS = ("subject_code", "subject_name", "coefficient", "description", "is_active")


def coefficient_for(score_type: str) -> int:
    try:
        return SCORE_COEFFICIENTS[score_type]
    except KeyError:
        raise ValidationError("INVALID_SCORE_TYPE", f"Unknown score type '{score_type}'.")


def classify_average(average: Optional[float]) -> str:
    if average is None:
        return "no_scores"
    for lower_bound, label in CLASSIFICATION_BANDS:
        if average >= lower_bound:
            return label
    return "poor"


def get_subject(db: DatabaseService, school_id: str, subject_id: str) -> Subject:
    subject = db.get_subject_by_id(subject_id, school_id)
    if subject is None:
        raise NotFoundError("SUBJECT_NOT_FOUND", f"Subject with ID {subject_id} not found")
    return subject


def get_score(db: DatabaseService, school_id: str, score_id: str) -> Score:
    score = db.get_score_by_id(score_id, school_id)
    if score is None:
        raise NotFoundError("SCORE_NOT_FOUND", f"Score with ID {score_id} not found")
    return score


def list_scores(db: DatabaseService, school_id: str, **filters) -> List[Score]:
    return db.list_scores(school_id, **{k: v for k, v in filters.items() if v is not None})


def _invalidate_student_overviews(db: DatabaseService, cache: Optional[CacheService], student_ids) -> None:
    if cache is not None:
        invalidate_user_overview(cache, *db.get_user_ids_for_students(student_ids))


# --- Subjects ---

def create_subject(subject_data: score_model.SubjectCreate, db: DatabaseService, actor) -> Subject:
    school_id = actor.school_id
    code = subject_data.subject_code.strip().upper()

    def work(tx: DatabaseService) -> Subject:
        if tx.get_subject_by_code(school_id, code) is not None:
            raise ConflictError("SUBJECT_CODE_EXISTS", f"Subject code {code} already exists in this school.")
        return tx.add_subject(Subject(
            id=f"sub_{uuid.uuid4().hex[:12]}",
            school_id=school_id,
            subject_code=code,
            subject_name=subject_data.subject_name.strip(),
            coefficient=subject_data.coefficient,
            description=subject_data.description,
        ))

    return db.run_in_transaction(work, label="create_subject")


def list_subjects(db: DatabaseService, school_id: str, include_inactive: bool = False) -> List[Subject]:
    return db.list_subjects(school_id, active_only=not include_inactive)


def update_subject(subject_id: str, subject_update: score_model.SubjectUpdate, db: DatabaseService, actor) -> Subject:
    school_id = actor.school_id
    changes = {k: v for k, v in subject_update.model_dump(exclude_unset=True).items() if v is not None or k == "description"}
    if changes.get("subject_code"):
        changes["subject_code"] = changes["subject_code"].strip().upper()
    if changes.get("subject_name"):
        changes["subject_name"] = changes["subject_name"].strip()

    def work(tx: DatabaseService):
        subject = get_subject(tx, school_id, subject_id)
        before = snapshot(subject, SUBJECT_SNAPSHOT_FIELDS)
        code = changes.get("subject_code")
        if code and code != subject.subject_code:
            clash = tx.get_subject_by_code(school_id, code)
            if clash is not None and clash.id != subject.id:
                raise ConflictError("SUBJECT_CODE_EXISTS", f"Subject code {code} already exists in this school.")
        for field, value in changes.items():
            setattr(subject, field, value)
        tx.session.flush()
        return subject, before

    with audit_trail(db, actor, "SUBJECT_UPDATE", "Subject", resource_id=subject_id) as trail:
        subject, before = db.run_in_transaction(work, label="update_subject")
        trail.before = before
        trail.after = snapshot(subject, SUBJECT_SNAPSHOT_FIELDS)
    return subject


def delete_subject(subject_id: str, db: DatabaseService, actor) -> None:
    """Deactivates the subject. Its scores stay and still count towards averages."""
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        subject = get_subject(tx, school_id, subject_id)
        before = snapshot(subject, SUBJECT_SNAPSHOT_FIELDS)
        subject.is_active = False
        tx.session.flush()
        return before

    with audit_trail(db, actor, "SUBJECT_DELETE", "Subject", resource_id=subject_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_subject")
        trail.after = {**trail.before, "is_active": False}


# --- Entry ---

def enter_scores(
    request: score_model.EnterScoresRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> score_model.EnterScoresResult:
    """
    Upserts one score per student for a cohort and score type.

    Entries for students outside the class are skipped and reported. If any
    targeted record of the cohort is locked, the whole batch is rejected and
    nothing is written.
    """
    school_id = actor.school_id
    score_type = score_model.ScoreType(request.score_type).value
    coefficient = coefficient_for(score_type)
    # Last entry wins when a student appears twice.
    entries: Dict[str, score_model.ScoreEntry] = {}
    for entry in request.scores:
        invariants.validate_score_value(entry.score)
        entries[entry.student_id] = entry

    get_class(db, school_id, request.class_id)
    get_subject(db, school_id, request.subject_id)
    tenant_service.ensure_semester_allowed(db, school_id, request.semester)

    def work(tx: DatabaseService) -> score_model.EnterScoresResult:
        enrolled = set(tx.get_student_ids_in_class(school_id, request.class_id))
        skipped = [
            {"studentId": student_id, "reason": "NOT_IN_CLASS"}
            for student_id in entries if student_id not in enrolled
        ]
        valid_ids = [student_id for student_id in entries if student_id in enrolled]
        if not valid_ids:
            raise ValidationError("NO_VALID_SCORES", "None of the submitted scores belong to students of this class.")

        cohort = tx.get_cohort_scores(
            school_id, request.class_id, request.subject_id, request.semester, request.academic_year,
            score_type=score_type,
        )
        locked_ids = sorted({row.student_id for row in cohort if row.is_locked})
        if locked_ids:
            raise ConflictError(
                "SCORE_LOCKED",
                "Scores for this cohort are locked and cannot be changed.",
                {"lockedStudentIds": locked_ids},
            )

        existing = {row.student_id: row for row in cohort}
        now = utcnow()
        created = updated = 0
        for student_id in valid_ids:
            entry = entries[student_id]
            note = entry.note.strip() if entry.note else None
            row = existing.get(student_id)
            if row is None:
                tx.add_score(Score(
                    id=f"scr_{uuid.uuid4().hex[:12]}",
                    school_id=school_id,
                    student_id=student_id,
                    class_id=request.class_id,
                    subject_id=request.subject_id,
                    semester=request.semester,
                    academic_year=request.academic_year,
                    score_type=score_type,
                    score=entry.score,
                    coefficient=coefficient,
                    note=note,
                    teacher_id=actor.id,
                    entered_at=now,
                ))
                created += 1
            else:
                row.score = entry.score
                row.note = note
                row.teacher_id = actor.id
                row.entered_at = now
                updated += 1
        tx.session.flush()
        return score_model.EnterScoresResult(created=created, updated=updated, skipped=skipped)

    with audit_trail(db, actor, "SCORE_ENTER", "Score", resource_id=request.class_id) as trail:
        result = db.run_in_transaction(work, label="enter_scores")
        trail.after = result.model_dump()
        trail.metadata = {"subjectId": request.subject_id, "semester": request.semester, "scoreType": score_type}

    _invalidate_student_overviews(db, cache, entries.keys())
    return result


def update_score(
    score_id: str,
    score_update: score_model.ScoreUpdate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Score:
    school_id = actor.school_id
    value = invariants.validate_score_value(score_update.score)

    def work(tx: DatabaseService):
        score = get_score(tx, school_id, score_id)
        invariants.ensure_score_unlocked(score)
        before = snapshot(score, SNAPSHOT_FIELDS)
        score.score = value
        if "note" in score_update.model_fields_set:
            score.note = score_update.note
        score.teacher_id = actor.id
        score.entered_at = utcnow()
        tx.session.flush()
        return score, before

    with audit_trail(db, actor, "SCORE_UPDATE", "Score", resource_id=score_id) as trail:
        score, before = db.run_in_transaction(work, label="update_score")
        trail.before = before
        trail.after = snapshot(score, SNAPSHOT_FIELDS)

    _invalidate_student_overviews(db, cache, [score.student_id])
    return score


def delete_score(score_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        score = get_score(tx, school_id, score_id)
        invariants.ensure_score_unlocked(score)
        before = snapshot(score, SNAPSHOT_FIELDS)
        tx.delete_score(score)
        return before

    with audit_trail(db, actor, "SCORE_DELETE", "Score", resource_id=score_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_score")

    _invalidate_student_overviews(db, cache, [trail.before["student_id"]])


# --- Cohort locking ---

def _set_cohort_lock(cohort: score_model.CohortRequest, db: DatabaseService, actor, lock: bool) -> score_model.CohortLockResult:
    school_id = actor.school_id
    score_type = score_model.ScoreType(cohort.score_type).value if cohort.score_type else None
    get_class(db, school_id, cohort.class_id)
    get_subject(db, school_id, cohort.subject_id)
    tenant_service.ensure_semester_allowed(db, school_id, cohort.semester)

    def work(tx: DatabaseService) -> int:
        rows = tx.get_cohort_scores(
            school_id, cohort.class_id, cohort.subject_id, cohort.semester, cohort.academic_year,
            score_type=score_type,
        )
        targets = [row for row in rows if bool(row.is_locked) != lock]
        if not targets:
            if lock:
                raise ConflictError("NOTHING_TO_LOCK", "No unlocked scores found for this cohort.")
            raise ConflictError("NOTHING_TO_UNLOCK", "No locked scores found for this cohort.")
        now = utcnow()
        for row in targets:
            row.is_locked = lock
            row.locked_by = actor.id if lock else None
            row.locked_at = now if lock else None
        tx.session.flush()
        return len(targets)

    action = "SCORE_LOCK" if lock else "SCORE_UNLOCK"
    with audit_trail(db, actor, action, "Score", resource_id=cohort.class_id) as trail:
        modified = db.run_in_transaction(work, label=action.lower())
        trail.after = {"modified": modified, "isLocked": lock}
        trail.metadata = cohort.model_dump(mode="json")

    logger.info("%s: %d scores in class %s subject %s", action, modified, cohort.class_id, cohort.subject_id)
    return score_model.CohortLockResult(modified=modified, is_locked=lock)


def lock_scores(cohort: score_model.CohortRequest, db: DatabaseService, actor) -> score_model.CohortLockResult:
    return _set_cohort_lock(cohort, db, actor, lock=True)


def unlock_scores(cohort: score_model.CohortRequest, db: DatabaseService, actor) -> score_model.CohortLockResult:
    """Admin-only; the router enforces the role."""
    return _set_cohort_lock(cohort, db, actor, lock=False)


# --- Averages and reports ---

def _weighted_averages(scores: List[Score], subject_coefficients: Dict[str, float]) -> Tuple[Dict[Tuple[str, str], float], Dict[str, float]]:
    """
    A subject average weights scores by their type coefficient; the overall
    average weights subject averages by the subject coefficient. Returns the
    subject averages keyed by (student, subject) and the overall average per
    student, both rounded to one decimal.
    """
    if not scores:
        return {}, {}
    df = pd.DataFrame([
        {"student_id": s.student_id, "subject_id": s.subject_id, "score": s.score, "coefficient": s.coefficient}
        for s in scores
    ])
    df["weighted"] = df["score"] * df["coefficient"]
    per_subject = df.groupby(["student_id", "subject_id"], as_index=False)[["weighted", "coefficient"]].sum()
    per_subject["average"] = per_subject["weighted"] / per_subject["coefficient"]
    per_subject["subject_coefficient"] = per_subject["subject_id"].map(subject_coefficients).fillna(1)
    per_subject["weighted_average"] = per_subject["average"] * per_subject["subject_coefficient"]
    per_student = per_subject.groupby("student_id")[["weighted_average", "subject_coefficient"]].sum()
    overall = (per_student["weighted_average"] / per_student["subject_coefficient"]).round(1)

    subject_averages = {
        (row.student_id, row.subject_id): round(float(row.average), 1)
        for row in per_subject.itertuples(index=False)
    }
    return subject_averages, {student_id: float(value) for student_id, value in overall.items()}


def _subject_coefficients(db: DatabaseService, school_id: str) -> Dict[str, float]:
    return {subject.id: subject.coefficient for subject in db.list_subjects(school_id)}


def _ranked(students, averages: Dict[str, float]) -> List[score_model.RankingRow]:
    """Best average first; students without scores come last and get no rank."""
    rows = [
        {
            "student_id": s.id,
            "student_code": s.student_code,
            "full_name": s.full_name,
            "average": averages.get(s.id),
        }
        for s in students
    ]
    rows.sort(key=lambda r: (r["average"] is None, -(r["average"] or 0), r["full_name"]))
    return [
        score_model.RankingRow(
            rank=position if row["average"] is not None else None,
            classification=classify_average(row["average"]),
            **row,
        )
        for position, row in enumerate(rows, start=1)
    ]


def class_ranking(
    db: DatabaseService,
    school_id: str,
    class_id: str,
    semester: int,
    academic_year: str,
) -> List[score_model.RankingRow]:
    """Semester averages for every studying student of a class, best first."""
    get_class(db, school_id, class_id)
    tenant_service.ensure_semester_allowed(db, school_id, semester)
    students = db.list_students(school_id, class_id=class_id, status="studying")
    if not students:
        return []
    scores = db.list_scores(school_id, class_id=class_id, semester=semester, academic_year=academic_year)
    _, overall = _weighted_averages(scores, _subject_coefficients(db, school_id))
    return _ranked(students, overall)


def get_class_scores_by_subject(
    db: DatabaseService,
    school_id: str,
    class_id: str,
    subject_id: str,
    semester: int,
    academic_year: str,
) -> List[score_model.StudentScores]:
    """The score sheet of one cohort: every studying student in code order, with or without scores."""
    get_class(db, school_id, class_id)
    get_subject(db, school_id, subject_id)
    tenant_service.ensure_semester_allowed(db, school_id, semester)
    students = sorted(db.list_students(school_id, class_id=class_id, status="studying"), key=lambda s: s.student_code)
    cohort = db.get_cohort_scores(school_id, class_id, subject_id, semester, academic_year)
    by_student: Dict[str, List[Score]] = {}
    for score in sorted(cohort, key=lambda s: (coefficient_for(s.score_type), s.entered_at)):
        by_student.setdefault(score.student_id, []).append(score)
    subject_averages, _ = _weighted_averages(cohort, _subject_coefficients(db, school_id))

    return [
        score_model.StudentScores(
            student_id=student.id,
            student_code=student.student_code,
            full_name=student.full_name,
            scores=[score_model.ScoreRead.model_validate(s) for s in by_student.get(student.id, [])],
            average=subject_averages.get((student.id, subject_id)),
        )
        for student in students
    ]


def get_student_transcript(
    db: DatabaseService,
    school_id: str,
    student_id: str,
    semester: int,
    academic_year: str,
) -> score_model.Transcript:
    student = get_student(db, school_id, student_id)
    tenant_service.ensure_semester_allowed(db, school_id, semester)
    scores = db.list_scores(school_id, student_id=student_id, semester=semester, academic_year=academic_year)
    subjects = {subject.id: subject for subject in db.list_subjects(school_id)}
    subject_averages, overall = _weighted_averages(scores, {sid: s.coefficient for sid, s in subjects.items()})

    grouped: Dict[str, List[Score]] = {}
    for score in scores:
        grouped.setdefault(score.subject_id, []).append(score)

    entries = []
    for subject_id, subject_scores in grouped.items():
        subject = subjects.get(subject_id)
        subject_scores.sort(key=lambda s: (coefficient_for(s.score_type), s.entered_at))
        entries.append(score_model.TranscriptSubject(
            subject_id=subject_id,
            subject_code=subject.subject_code if subject else "",
            subject_name=subject.subject_name if subject else "",
            coefficient=subject.coefficient if subject else 1,
            scores=[score_model.ScoreRead.model_validate(s) for s in subject_scores],
            average=subject_averages.get((student_id, subject_id)),
        ))
    entries.sort(key=lambda e: e.subject_name)

    semester_average = overall.get(student_id)
    return score_model.Transcript(
        student_id=student.id,
        student_code=student.student_code,
        full_name=student.full_name,
        class_id=student.class_id,
        semester=semester,
        academic_year=academic_year,
        subjects=entries,
        semester_average=semester_average,
        classification=classify_average(semester_average),
    )


# Lower edges of the distribution bands; the last band is closed at 10.
SCORE_BAND_EDGES = (0.0, 2.0, 4.0, 5.0, 6.5, 8.0, 9.0, 10.0)


def get_score_statistics(
    db: DatabaseService,
    school_id: str,
    class_id: str,
    semester: int,
    academic_year: str,
    subject_id: Optional[str] = None,
) -> score_model.ScoreStatistics:
    """
    Counts per score type and per band for a class and semester. With a
    subject, also the subject average of every studying student; without
    one, how many students fall into each semester classification.
    """
    get_class(db, school_id, class_id)
    if subject_id:
        get_subject(db, school_id, subject_id)
    tenant_service.ensure_semester_allowed(db, school_id, semester)
    filters = {"class_id": class_id, "semester": semester, "academic_year": academic_year}
    if subject_id:
        filters["subject_id"] = subject_id
    scores = db.list_scores(school_id, **filters)
    df = pd.DataFrame([{"student_id": s.student_id, "score_type": s.score_type, "score": s.score} for s in scores])

    by_type = []
    distribution = []
    if not df.empty:
        grouped = df.groupby("score_type")["score"].agg(["count", "mean", "max", "min"]).reset_index()
        by_type = [
            score_model.ScoreTypeStats(
                score_type=row["score_type"],
                count=int(row["count"]),
                average=round(float(row["mean"]), 2),
                max=float(row["max"]),
                min=float(row["min"]),
            )
            for _, row in grouped.sort_values("score_type").iterrows()
        ]
    for low, high in zip(SCORE_BAND_EDGES, SCORE_BAND_EDGES[1:]):
        if df.empty:
            band = df
        elif high == SCORE_BAND_EDGES[-1]:
            band = df[(df["score"] >= low) & (df["score"] <= high)]
        else:
            band = df[(df["score"] >= low) & (df["score"] < high)]
        distribution.append(score_model.ScoreBand(
            low=low,
            high=high,
            count=len(band),
            students=int(band["student_id"].nunique()) if len(band) else 0,
        ))

    students = db.list_students(school_id, class_id=class_id, status="studying")
    subject_averages = None
    classification_distribution = None
    if subject_id:
        averages, _ = _weighted_averages(scores, _subject_coefficients(db, school_id))
        subject_averages = _ranked(students, {sid: avg for (sid, _), avg in averages.items()})
    else:
        _, overall = _weighted_averages(scores, _subject_coefficients(db, school_id))
        classification_distribution = {}
        for student in students:
            label = classify_average(overall.get(student.id))
            classification_distribution[label] = classification_distribution.get(label, 0) + 1

    return score_model.ScoreStatistics(
        total_scores=len(scores),
        by_score_type=by_type,
        distribution=distribution,
        subject_averages=subject_averages,
        classification_distribution=classification_distribution,
    )
