# /tests/test_attendance.py

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import NotFoundError, ValidationError
from app.models.attendance_model import MarkAttendanceRequest, MarkEntry
from app.services import attendance_service, student_service

MONDAY = date(2026, 3, 2)
TUESDAY = date(2026, 3, 3)


@pytest.fixture
def homeroom(db, admin, make_class, make_student):
    """Class 10A1 with An and Binh, plus Cuong who sits in 10A2."""
    class_obj = make_class(code="10A1")
    other = make_class(code="10A2")
    an = make_student(class_id=class_obj.id, full_name="An Nguyen")
    binh = make_student(class_id=class_obj.id, full_name="Binh Tran")
    cuong = make_student(class_id=other.id, full_name="Cuong Le")
    return {"class": class_obj, "other": other, "an": an, "binh": binh, "cuong": cuong}


def _mark(db, admin, class_id, marks, on=MONDAY, session="full_day"):
    request = MarkAttendanceRequest(
        class_id=class_id,
        date=on,
        session=session,
        entries=[MarkEntry(student_id=student_id, status=status, period=period) for student_id, status, period in marks],
    )
    return attendance_service.mark_class_attendance(request, db, admin)


def _marks_for(db, admin, **filters):
    db.session.expire_all()
    return db.list_attendances(admin.school_id, **filters)


# --- Marking ---

def test_marking_skips_outsiders_and_counts_absences(db, admin, homeroom):
    result = _mark(db, admin, homeroom["class"].id, [
        (homeroom["an"].id, "present", None),
        (homeroom["binh"].id, "absent_unexcused", None),
        (homeroom["cuong"].id, "present", None),
    ])

    assert (result.marked, result.notified) == (2, 1)
    assert {m.student_id for m in _marks_for(db, admin)} == {homeroom["an"].id, homeroom["binh"].id}


def test_marking_the_same_session_again_overwrites(db, admin, homeroom):
    an = homeroom["an"]
    _mark(db, admin, homeroom["class"].id, [(an.id, "present", None)])

    result = _mark(db, admin, homeroom["class"].id, [(an.id, "absent_excused", None)])

    assert (result.marked, result.notified) == (1, 1)
    marks = _marks_for(db, admin, student_id=an.id)
    assert [(m.status, m.session, m.period) for m in marks] == [("absent_excused", "full_day", 0)]


def test_periods_and_sessions_are_separate_marks(db, admin, homeroom):
    an = homeroom["an"]
    _mark(db, admin, homeroom["class"].id, [(an.id, "present", 1), (an.id, "late", 2), (an.id, "present", None)], session="morning")
    _mark(db, admin, homeroom["class"].id, [(an.id, "left_early", None)], session="afternoon")

    marks = _marks_for(db, admin, student_id=an.id)

    assert sorted((m.session, m.period, m.status) for m in marks) == [
        ("afternoon", 0, "left_early"),
        ("morning", 0, "present"),
        ("morning", 1, "present"),
        ("morning", 2, "late"),
    ]


def test_last_duplicate_entry_wins(db, admin, homeroom):
    an = homeroom["an"]
    result = _mark(db, admin, homeroom["class"].id, [(an.id, "present", None), (an.id, "late", None)])

    assert result.marked == 1
    assert [m.status for m in _marks_for(db, admin, student_id=an.id)] == ["late"]


def test_future_dates_are_refused(db, admin, homeroom):
    request = MarkAttendanceRequest(
        class_id=homeroom["class"].id,
        date=TUESDAY,
        entries=[MarkEntry(student_id=homeroom["an"].id, status="present")],
    )
    with pytest.raises(ValidationError) as excinfo:
        attendance_service.mark_class_attendance(request, db, admin, today=MONDAY)
    assert excinfo.value.code == "FUTURE_DATE"
    assert _marks_for(db, admin) == []


def test_class_without_students_cannot_be_marked(db, admin, make_class, homeroom):
    empty = make_class(code="11B1")
    with pytest.raises(ValidationError) as excinfo:
        _mark(db, admin, empty.id, [(homeroom["an"].id, "present", None)])
    assert excinfo.value.code == "NO_STUDENTS"


def test_request_needs_entries_and_valid_values():
    with pytest.raises(PydanticValidationError):
        MarkAttendanceRequest(class_id="cls_1", date=MONDAY, entries=[])
    with pytest.raises(PydanticValidationError):
        MarkEntry(student_id="stu_1", status="sleeping")
    with pytest.raises(PydanticValidationError):
        MarkEntry(student_id="stu_1", status="present", period=11)
    assert MarkAttendanceRequest(class_id="cls_1", date=MONDAY, entries=[{"studentId": "stu_1", "status": "late"}]).session.value == "full_day"


def test_deleting_a_student_removes_their_marks(db, admin, homeroom):
    _mark(db, admin, homeroom["class"].id, [(homeroom["an"].id, "present", None), (homeroom["binh"].id, "present", None)])

    student_service.delete_student(homeroom["an"].id, db, admin)

    assert [m.student_id for m in _marks_for(db, admin)] == [homeroom["binh"].id]


def test_delete_mark(db, admin, homeroom):
    _mark(db, admin, homeroom["class"].id, [(homeroom["an"].id, "present", None)])
    mark = _marks_for(db, admin)[0]

    attendance_service.delete_attendance(mark.id, db, admin)

    assert _marks_for(db, admin) == []
    with pytest.raises(NotFoundError):
        attendance_service.delete_attendance(mark.id, db, admin)


# --- Reading ---

def test_class_sheet_for_a_day_lists_unmarked_students_too(db, admin, homeroom):
    _mark(db, admin, homeroom["class"].id, [(homeroom["an"].id, "late", None)])

    rows = attendance_service.class_attendance_by_date(db, admin.school_id, homeroom["class"].id, MONDAY)

    assert [(r.full_name, [a.status for a in r.attendance]) for r in rows] == [("An Nguyen", ["late"]), ("Binh Tran", [])]
    assert rows[0].attendance[0].period is None


def test_student_report_rates_present_marks(db, admin, homeroom):
    an = homeroom["an"]
    for day, status in ((date(2026, 3, 2), "present"), (date(2026, 3, 3), "late"), (date(2026, 3, 4), "present")):
        _mark(db, admin, homeroom["class"].id, [(an.id, status, None)], on=day)

    report = attendance_service.student_report(db, admin.school_id, an.id, date(2026, 3, 1), date(2026, 3, 3))

    assert [a.date for a in report.attendances] == [date(2026, 3, 2), date(2026, 3, 3)]
    assert (report.stats.total, report.stats.present, report.stats.late, report.stats.attendance_rate) == (2, 1, 1, 50.0)

    full = attendance_service.student_report(db, admin.school_id, an.id, date(2026, 3, 1), date(2026, 3, 31))
    assert full.stats.attendance_rate == 66.67


def test_reports_reject_reversed_ranges(db, admin, homeroom):
    with pytest.raises(ValidationError) as excinfo:
        attendance_service.class_report(db, admin.school_id, homeroom["class"].id, TUESDAY, MONDAY)
    assert excinfo.value.code == "INVALID_RANGE"


def test_class_report_puts_best_attendance_first(db, admin, homeroom):
    an, binh = homeroom["an"], homeroom["binh"]
    _mark(db, admin, homeroom["class"].id, [(an.id, "absent_unexcused", None), (binh.id, "present", None)], on=MONDAY)
    _mark(db, admin, homeroom["class"].id, [(an.id, "present", None), (binh.id, "present", None)], on=TUESDAY)

    report = attendance_service.class_report(db, admin.school_id, homeroom["class"].id, MONDAY, TUESDAY)

    assert report.class_name == "10A1"
    assert [(row.full_name, row.total, row.absent_unexcused, row.attendance_rate) for row in report.report] == [
        ("Binh Tran", 2, 0, 100.0),
        ("An Nguyen", 2, 1, 50.0),
    ]


def test_statistics_group_by_status_class_and_day(db, admin, homeroom):
    _mark(db, admin, homeroom["class"].id, [(homeroom["an"].id, "present", None), (homeroom["binh"].id, "absent_excused", None)], on=MONDAY)
    _mark(db, admin, homeroom["other"].id, [(homeroom["cuong"].id, "present", None)], on=TUESDAY)

    stats = attendance_service.get_statistics(db, admin.school_id, MONDAY, TUESDAY)

    assert (stats.total, stats.attendance_rate) == (3, 66.67)
    assert stats.by_status == {"absent_excused": 1, "present": 2}
    assert [(g.name, g.total, g.present, g.absent, g.attendance_rate) for g in stats.by_class] == [
        ("10A1", 2, 1, 1, 50.0),
        ("10A2", 1, 1, 0, 100.0),
    ]
    assert [(g.key, g.total) for g in stats.daily] == [("2026-03-02", 2), ("2026-03-03", 1)]

    one_class = attendance_service.get_statistics(db, admin.school_id, MONDAY, TUESDAY, class_id=homeroom["other"].id)
    assert one_class.total == 1


def test_statistics_of_an_empty_range(db, admin, homeroom):
    stats = attendance_service.get_statistics(db, admin.school_id, MONDAY, TUESDAY)
    assert (stats.total, stats.attendance_rate, stats.by_class) == (0, 0.0, [])
