# /tests/test_scores.py

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.score_model import CohortRequest, EnterScoresRequest, ScoreEntry, ScoreUpdate, SubjectCreate, SubjectUpdate
from app.services import invariants, score_service, tenant_service
from conftest import ACADEMIC_YEAR


@pytest.fixture
def cohort(db, admin, make_class, make_student):
    """A class of two students and a subject, ready for score entry."""
    class_obj = make_class(code="10A1")
    students = [make_student(class_id=class_obj.id, full_name=name) for name in ("An Nguyen", "Binh Tran")]
    subject = score_service.create_subject(
        SubjectCreate(subject_code="math", subject_name="Mathematics", coefficient=2), db, admin,
    )
    return {"class": class_obj, "students": students, "subject": subject}


def _enter(db, admin, cohort, values, score_type="15min", semester=1):
    request = EnterScoresRequest(
        class_id=cohort["class"].id,
        subject_id=cohort["subject"].id,
        semester=semester,
        academic_year=ACADEMIC_YEAR,
        score_type=score_type,
        scores=[ScoreEntry(student_id=student_id, score=value) for student_id, value in values],
    )
    return score_service.enter_scores(request, db, admin)


def _cohort_request(cohort, score_type=None):
    return CohortRequest(
        class_id=cohort["class"].id,
        subject_id=cohort["subject"].id,
        semester=1,
        academic_year=ACADEMIC_YEAR,
        score_type=score_type,
    )


def _scores(db, admin, cohort):
    db.session.expire_all()
    return score_service.list_scores(db, admin.school_id, class_id=cohort["class"].id)


# --- Pure helpers ---

def test_validate_score_value_bounds():
    assert invariants.validate_score_value("7.5") == 7.5
    assert invariants.validate_score_value(0) == 0.0
    assert invariants.validate_score_value(10) == 10.0
    for bad in (-0.1, 10.5, "abc", None):
        with pytest.raises(ValidationError):
            invariants.validate_score_value(bad)


def test_coefficients_follow_score_type():
    assert [score_service.coefficient_for(t) for t in ("oral", "15min", "1period", "midterm", "final")] == [1, 1, 2, 2, 3]
    with pytest.raises(ValidationError):
        score_service.coefficient_for("homework")


@pytest.mark.parametrize("average, label", [
    (9.0, "excellent"), (8.4, "good"), (6.5, "fair"), (5.0, "average"), (3.5, "weak"), (2.0, "poor"), (None, "no_scores"),
])
def test_classify_average(average, label):
    assert score_service.classify_average(average) == label


# --- Subjects ---

def test_subject_codes_are_unique_per_school(db, admin, cohort):
    assert cohort["subject"].subject_code == "MATH"
    with pytest.raises(ConflictError) as excinfo:
        score_service.create_subject(SubjectCreate(subject_code="Math", subject_name="Maths again"), db, admin)
    assert excinfo.value.code == "SUBJECT_CODE_EXISTS"


# --- Entry ---

def test_enter_scores_creates_then_updates(db, admin, cohort):
    first, second = (s.id for s in cohort["students"])

    created = _enter(db, admin, cohort, [(first, 7.5), (second, 6.0)])
    assert (created.created, created.updated, created.skipped) == (2, 0, [])

    updated = _enter(db, admin, cohort, [(first, 8.0)])
    assert (updated.created, updated.updated) == (0, 1)

    values = {s.student_id: (s.score, s.coefficient) for s in _scores(db, admin, cohort)}
    assert values == {first: (8.0, 1), second: (6.0, 1)}


def test_enter_scores_skips_students_outside_the_class(db, admin, cohort, make_student):
    outsider = make_student()

    result = _enter(db, admin, cohort, [(cohort["students"][0].id, 9.0), (outsider.id, 5.0)])

    assert result.created == 1
    assert result.skipped == [{"studentId": outsider.id, "reason": "NOT_IN_CLASS"}]


def test_enter_scores_with_only_outsiders_is_rejected(db, admin, cohort, make_student):
    outsider = make_student()

    with pytest.raises(ValidationError) as excinfo:
        _enter(db, admin, cohort, [(outsider.id, 5.0)])

    assert excinfo.value.code == "NO_VALID_SCORES"
    assert _scores(db, admin, cohort) == []


def test_last_duplicate_entry_wins(db, admin, cohort):
    student_id = cohort["students"][0].id

    result = _enter(db, admin, cohort, [(student_id, 4.0), (student_id, 6.5)])

    assert result.created == 1
    assert [s.score for s in _scores(db, admin, cohort)] == [6.5]


def test_unknown_subject_is_rejected(db, admin, cohort):
    request = EnterScoresRequest(
        class_id=cohort["class"].id, subject_id="sub_missing", semester=1, academic_year=ACADEMIC_YEAR,
        score_type="oral", scores=[ScoreEntry(student_id=cohort["students"][0].id, score=5)],
    )
    with pytest.raises(NotFoundError) as excinfo:
        score_service.enter_scores(request, db, admin)
    assert excinfo.value.code == "SUBJECT_NOT_FOUND"


# --- Locking ---

def test_locked_score_cannot_be_edited_until_unlocked(db, admin, cohort):
    """
    GIVEN a score of 7.5 that has been locked
    WHEN it is edited to 9.0
    THEN the edit fails with SCORE_LOCKED and the value stays 7.5;
         after an unlock the same edit succeeds.
    """
    student_id = cohort["students"][0].id
    _enter(db, admin, cohort, [(student_id, 7.5)])
    score_id = _scores(db, admin, cohort)[0].id

    locked = score_service.lock_scores(_cohort_request(cohort), db, admin)
    assert (locked.modified, locked.is_locked) == (1, True)

    with pytest.raises(ConflictError) as excinfo:
        score_service.update_score(score_id, ScoreUpdate(score=9.0), db, admin)
    assert excinfo.value.code == "SCORE_LOCKED"
    stored = _scores(db, admin, cohort)[0]
    assert stored.score == 7.5
    assert stored.locked_by == admin.id

    score_service.unlock_scores(_cohort_request(cohort), db, admin)
    edited = score_service.update_score(score_id, ScoreUpdate(score=9.0), db, admin)
    assert edited.score == 9.0
    print("\n✅ SUCCESS: Locked score held until unlocked.")


def test_entering_into_locked_cohort_rejects_the_whole_batch(db, admin, cohort):
    first, second = (s.id for s in cohort["students"])
    _enter(db, admin, cohort, [(first, 7.0)])
    score_service.lock_scores(_cohort_request(cohort, "15min"), db, admin)

    with pytest.raises(ConflictError) as excinfo:
        _enter(db, admin, cohort, [(first, 9.0), (second, 8.0)])

    assert excinfo.value.code == "SCORE_LOCKED"
    assert excinfo.value.details == {"lockedStudentIds": [first]}
    assert {s.student_id: s.score for s in _scores(db, admin, cohort)} == {first: 7.0}


def test_lock_is_scoped_to_the_score_type(db, admin, cohort):
    student_id = cohort["students"][0].id
    _enter(db, admin, cohort, [(student_id, 7.0)], score_type="15min")
    score_service.lock_scores(_cohort_request(cohort, "15min"), db, admin)

    result = _enter(db, admin, cohort, [(student_id, 8.0)], score_type="final")

    assert result.created == 1


def test_locking_twice_reports_nothing_to_lock(db, admin, cohort):
    _enter(db, admin, cohort, [(cohort["students"][0].id, 7.0)])
    score_service.lock_scores(_cohort_request(cohort), db, admin)

    with pytest.raises(ConflictError) as excinfo:
        score_service.lock_scores(_cohort_request(cohort), db, admin)
    assert excinfo.value.code == "NOTHING_TO_LOCK"

    score_service.unlock_scores(_cohort_request(cohort), db, admin)
    with pytest.raises(ConflictError) as excinfo:
        score_service.unlock_scores(_cohort_request(cohort), db, admin)
    assert excinfo.value.code == "NOTHING_TO_UNLOCK"


def test_locked_score_cannot_be_deleted(db, admin, cohort):
    _enter(db, admin, cohort, [(cohort["students"][0].id, 7.0)])
    score_id = _scores(db, admin, cohort)[0].id
    score_service.lock_scores(_cohort_request(cohort), db, admin)

    with pytest.raises(ConflictError):
        score_service.delete_score(score_id, db, admin)
    assert len(_scores(db, admin, cohort)) == 1


def test_lock_racing_an_entry_wins(db, admin, cohort, new_db, mocker):
    """
    GIVEN a teacher whose entry has already read the cohort as unlocked
    WHEN an administrator locks the cohort before the entry writes
    THEN the entry's write conflicts, its retry sees the lock and the whole
         batch fails with SCORE_LOCKED.
    """
    student_id = cohort["students"][0].id
    _enter(db, admin, cohort, [(student_id, 7.5)])
    db_teacher, db_admin = new_db(), new_db()
    real_read = db_teacher.get_cohort_scores
    calls = []

    def read_then_lock(*args, **kwargs):
        calls.append(1)
        rows = real_read(*args, **kwargs)
        if len(calls) == 1:
            score_service.lock_scores(_cohort_request(cohort), db_admin, admin)
        return rows

    mocker.patch.object(db_teacher, "get_cohort_scores", side_effect=read_then_lock)

    with pytest.raises(ConflictError) as excinfo:
        _enter(db_teacher, admin, cohort, [(student_id, 9.0)])

    assert excinfo.value.code == "SCORE_LOCKED"
    assert len(calls) == 2
    stored = _scores(db, admin, cohort)[0]
    assert (stored.score, stored.is_locked) == (7.5, True)


# --- Ranking ---

def test_class_ranking_weights_types_and_subjects(db, admin, cohort, make_student):
    """
    The subject average weights each score by its type; the overall average
    weights each subject by its coefficient. Students without scores come last.
    """
    first, second = (s.id for s in cohort["students"])
    idle = make_student(class_id=cohort["class"].id, full_name="Chi Le")
    literature = score_service.create_subject(
        SubjectCreate(subject_code="LIT", subject_name="Literature", coefficient=1), db, admin,
    )

    # Maths (coefficient 2): first = (6*1 + 9*3) / 4 = 8.25, second = 5.0
    _enter(db, admin, cohort, [(first, 6.0), (second, 5.0)], score_type="oral")
    _enter(db, admin, cohort, [(first, 9.0)], score_type="final")
    # Literature (coefficient 1): first = 9.0, second = 8.0
    lit_cohort = {**cohort, "subject": literature}
    _enter(db, admin, lit_cohort, [(first, 9.0), (second, 8.0)], score_type="midterm")

    ranking = score_service.class_ranking(db, admin.school_id, cohort["class"].id, 1, ACADEMIC_YEAR)

    # first = (8.25*2 + 9*1) / 3 = 8.5, second = (5*2 + 8*1) / 3 = 6.0
    assert [(r.rank, r.student_id, r.average, r.classification) for r in ranking] == [
        (1, first, 8.5, "good"),
        (2, second, 6.0, "average"),
        (None, idle.id, None, "no_scores"),
    ]


def test_ranking_of_empty_class_is_empty(db, admin, make_class):
    class_obj = make_class(code="10A9")
    assert score_service.class_ranking(db, admin.school_id, class_obj.id, 1, ACADEMIC_YEAR) == []


# --- Semester bound ---

def test_third_semester_needs_a_three_semester_school(db, admin, cohort):
    student_ids = [s.id for s in cohort["students"]]
    with pytest.raises(ValidationError) as excinfo:
        _enter(db, admin, cohort, [(student_ids[0], 7)], semester=3)
    assert excinfo.value.code == "INVALID_SEMESTER"
    assert excinfo.value.details == {"semestersPerYear": 2}

    tenant_service.update_school_settings(db, admin, {"settings": {"semestersPerYear": 3}})
    result = _enter(db, admin, cohort, [(student_ids[0], 7)], semester=3)
    assert result.created == 1


def test_single_semester_school_rejects_second_semester_lock(db, admin, cohort):
    tenant_service.update_school_settings(db, admin, {"settings": {"semestersPerYear": 1}})
    request = _cohort_request(cohort).model_copy(update={"semester": 2})
    with pytest.raises(ValidationError) as excinfo:
        score_service.lock_scores(request, db, admin)
    assert excinfo.value.code == "INVALID_SEMESTER"


# --- Subjects ---

def test_subject_update_rejects_a_taken_code(db, admin, cohort):
    literature = score_service.create_subject(SubjectCreate(subject_code="lit", subject_name="Literature"), db, admin)

    with pytest.raises(ConflictError) as excinfo:
        score_service.update_subject(literature.id, SubjectUpdate(subject_code="math"), db, admin)
    assert excinfo.value.code == "SUBJECT_CODE_EXISTS"

    renamed = score_service.update_subject(literature.id, SubjectUpdate(subject_name="Vietnamese Literature", coefficient=2), db, admin)
    assert (renamed.subject_code, renamed.subject_name, renamed.coefficient) == ("LIT", "Vietnamese Literature", 2)


def test_deactivated_subject_keeps_its_scores(db, admin, cohort):
    an = cohort["students"][0]
    _enter(db, admin, cohort, [(an.id, 8)])

    score_service.delete_subject(cohort["subject"].id, db, admin)

    assert score_service.list_subjects(db, admin.school_id) == []
    assert [s.id for s in score_service.list_subjects(db, admin.school_id, include_inactive=True)] == [cohort["subject"].id]
    assert len(_scores(db, admin, cohort)) == 1


# --- Sheets, transcripts and statistics ---

@pytest.fixture
def graded(db, admin, cohort):
    """An: 15min 5 and final 9 (average 8.0); Binh: 15min 9 (average 9.0)."""
    an, binh = cohort["students"]
    _enter(db, admin, cohort, [(an.id, 5), (binh.id, 9)], score_type="15min")
    _enter(db, admin, cohort, [(an.id, 9)], score_type="final")
    return cohort


def test_class_sheet_lists_every_student_with_subject_average(db, admin, graded):
    sheet = score_service.get_class_scores_by_subject(
        db, admin.school_id, graded["class"].id, graded["subject"].id, 1, ACADEMIC_YEAR,
    )
    assert [(row.full_name, [s.score for s in row.scores], row.average) for row in sheet] == [
        ("An Nguyen", [5, 9], 8.0),
        ("Binh Tran", [9], 9.0),
    ]


def test_transcript_weights_subjects_by_coefficient(db, admin, graded):
    an = graded["students"][0]
    literature = score_service.create_subject(SubjectCreate(subject_code="lit", subject_name="Literature"), db, admin)
    _enter(db, admin, {**graded, "subject": literature}, [(an.id, 6)])

    transcript = score_service.get_student_transcript(db, admin.school_id, an.id, 1, ACADEMIC_YEAR)

    assert [(s.subject_name, s.average) for s in transcript.subjects] == [("Literature", 6.0), ("Mathematics", 8.0)]
    assert (transcript.semester_average, transcript.classification) == (7.3, "fair")


def test_score_statistics_for_the_whole_semester(db, admin, graded):
    stats = score_service.get_score_statistics(db, admin.school_id, graded["class"].id, 1, ACADEMIC_YEAR)

    assert stats.total_scores == 3
    assert [(t.score_type, t.count, t.average, t.max, t.min) for t in stats.by_score_type] == [
        ("15min", 2, 7.0, 9, 5),
        ("final", 1, 9.0, 9, 9),
    ]
    assert [(band.low, band.count, band.students) for band in stats.distribution if band.count] == [(5.0, 1, 1), (9.0, 2, 2)]
    assert stats.classification_distribution == {"good": 1, "excellent": 1}
    assert stats.subject_averages is None


def test_score_statistics_for_one_subject_rank_students(db, admin, graded):
    stats = score_service.get_score_statistics(
        db, admin.school_id, graded["class"].id, 1, ACADEMIC_YEAR, subject_id=graded["subject"].id,
    )
    assert [(row.full_name, row.rank, row.average) for row in stats.subject_averages] == [
        ("Binh Tran", 1, 9.0),
        ("An Nguyen", 2, 8.0),
    ]
    assert stats.classification_distribution is None
