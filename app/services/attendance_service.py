# /app/services/attendance_service.py

"""
Daily attendance for classes.

A mark is keyed by student, class, date, session and period, so marking the
same class twice for one session overwrites the earlier marks instead of
adding to them. The whole batch is written in one unit of work; entries for
students who are not in the class are skipped.
"""

import uuid
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.clock import utc_today, utcnow
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.attendance_models import Attendance
from ..models import attendance_model
from ..models.attendance_model import ABSENT_STATUSES, AttendanceStatus
from ..models.common_model import Page, PageParams
from .audit_service import audit_trail, snapshot
from .class_service import get_class
from .database_service import DatabaseService
from .student_service import get_student

logger = get_logger("attendance_service")

SNAPSHOT_FIELDS = ("student_id", "class_id", "date", "session", "period", "status", "note")


def get_attendance(db: DatabaseService, school_id: str, attendance_id: str) -> Attendance:
    attendance = db.get_attendance_by_id(attendance_id, school_id)
    if attendance is None:
        raise NotFoundError("ATTENDANCE_NOT_FOUND", f"Attendance record with ID {attendance_id} not found")
    return attendance


def attendance_rate(present: int, total: int) -> float:
    """Share of present marks in percent, two decimals; 0 when nothing was marked."""
    return round(present / total * 100, 2) if total else 0.0


def _ensure_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError("INVALID_RANGE", "The end date cannot be before the start date.")


def _to_read(rows: List[Attendance]) -> List[attendance_model.AttendanceRead]:
    return [attendance_model.AttendanceRead.model_validate(row) for row in rows]


# --- Marking ---

def mark_class_attendance(
    request: attendance_model.MarkAttendanceRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
    today: Optional[date] = None,
) -> attendance_model.MarkResult:
    """
    Upserts one mark per entry. When an entry appears twice for the same
    student and period, the later one wins.
    """
    school_id = actor.school_id
    if request.date > (today or utc_today()):
        raise ValidationError("FUTURE_DATE", "Attendance cannot be marked for a future date.")
    session = request.session.value
    entries: Dict[tuple, attendance_model.MarkEntry] = {}
    for entry in request.entries:
        entries[(entry.student_id, entry.period or 0)] = entry

    def work(tx: DatabaseService):
        class_obj = get_class(tx, school_id, request.class_id)
        members = set(tx.get_student_ids_in_class(school_id, class_obj.id))
        if not members:
            raise ValidationError("NO_STUDENTS", f"Class {class_obj.name} has no students to mark.")
        wanted = {key: entry for key, entry in entries.items() if key[0] in members}
        existing = {
            (row.student_id, row.period): row
            for row in tx.get_marks_for_day(school_id, class_obj.id, request.date, session, {key[0] for key in wanted})
        }
        now = utcnow()
        absences = 0
        for (student_id, period), entry in wanted.items():
            row = existing.get((student_id, period))
            if row is None:
                row = tx.add_attendance(Attendance(
                    id=f"att_{uuid.uuid4().hex[:12]}",
                    school_id=school_id,
                    student_id=student_id,
                    class_id=class_obj.id,
                    date=request.date,
                    session=session,
                    period=period,
                    status=entry.status.value,
                    note=entry.note,
                    marked_by=actor.id,
                ))
            else:
                row.status = entry.status.value
                row.note = entry.note
                row.marked_by = actor.id
                row.updated_at = now
            if row.status in ABSENT_STATUSES:
                absences += 1
        tx.session.flush()
        return attendance_model.MarkResult(marked=len(wanted), notified=absences), sorted({key[0] for key in wanted})

    with audit_trail(db, actor, "ATTENDANCE_MARK", "Attendance", resource_id=request.class_id) as trail:
        result, student_ids = db.run_in_transaction(work, label="mark_class_attendance")
        trail.after = result.model_dump()
        trail.metadata = {"date": request.date.isoformat(), "session": session, "skipped": len(entries) - result.marked}

    if result.marked < len(entries):
        logger.info("Skipped %d attendance entries for students outside class %s", len(entries) - result.marked, request.class_id)
    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *db.get_user_ids_for_students(student_ids))
    return result


def delete_attendance(attendance_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        attendance = get_attendance(tx, school_id, attendance_id)
        before = snapshot(attendance, SNAPSHOT_FIELDS)
        tx.delete_attendance(attendance)
        return before

    with audit_trail(db, actor, "ATTENDANCE_DELETE", "Attendance", resource_id=attendance_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_attendance")

    invalidate_school_metrics(cache, school_id)


# --- Reading ---

def page_attendances(
    db: DatabaseService,
    school_id: str,
    params: PageParams,
    student_id: Optional[str] = None,
    class_id: Optional[str] = None,
    status: Optional[str] = None,
    session: Optional[str] = None,
    on: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page[attendance_model.AttendanceRead]:
    """Newest first. A single day wins over a range; a range needs both ends."""
    filters = {"student_id": student_id, "class_id": class_id, "status": status, "session": session}
    if on:
        filters["date_from"] = filters["date_to"] = on
    elif start_date and end_date:
        filters["date_from"], filters["date_to"] = start_date, end_date
    rows, total = db.page_attendances(school_id, params.offset, params.limit, **filters)
    return Page[attendance_model.AttendanceRead].build(_to_read(rows), total, params)


def class_attendance_by_date(
    db: DatabaseService,
    school_id: str,
    class_id: str,
    on: date,
    session: Optional[str] = None,
) -> List[attendance_model.ClassDayRow]:
    """Every studying student of the class in code order, with whatever was marked for them that day."""
    get_class(db, school_id, class_id)
    students = sorted(db.list_students(school_id, class_id=class_id, status="studying"), key=lambda s: s.student_code)
    marks: Dict[str, List[Attendance]] = {}
    for row in db.get_marks_for_day(school_id, class_id, on, session):
        marks.setdefault(row.student_id, []).append(row)
    return [
        attendance_model.ClassDayRow(
            student_id=student.id,
            student_code=student.student_code,
            full_name=student.full_name,
            attendance=_to_read(marks.get(student.id, [])),
        )
        for student in students
    ]


def _count_statuses(statuses: List[str]) -> dict:
    counts = {status.value: 0 for status in AttendanceStatus}
    for status in statuses:
        if status in counts:
            counts[status] += 1
    total = len(statuses)
    return {**counts, "total": total, "attendance_rate": attendance_rate(counts["present"], total)}


def student_report(
    db: DatabaseService,
    school_id: str,
    student_id: str,
    start_date: date,
    end_date: date,
) -> attendance_model.StudentAttendanceReport:
    _ensure_range(start_date, end_date)
    student = get_student(db, school_id, student_id)
    rows = db.list_attendances(school_id, student_id=student_id, date_from=start_date, date_to=end_date)
    rows.sort(key=lambda r: (r.date, r.period))
    return attendance_model.StudentAttendanceReport(
        student_id=student.id,
        student_code=student.student_code,
        full_name=student.full_name,
        class_id=student.class_id,
        start_date=start_date,
        end_date=end_date,
        stats=attendance_model.AttendanceCounts(**_count_statuses([r.status for r in rows])),
        attendances=_to_read(rows),
    )


def class_report(
    db: DatabaseService,
    school_id: str,
    class_id: str,
    start_date: date,
    end_date: date,
) -> attendance_model.ClassAttendanceReport:
    """One row per student of the class, best attendance rate first."""
    _ensure_range(start_date, end_date)
    class_obj = get_class(db, school_id, class_id)
    students = db.list_students(school_id, class_id=class_id)
    statuses: Dict[str, List[str]] = {student.id: [] for student in students}
    for row in db.list_attendances(school_id, class_id=class_id, date_from=start_date, date_to=end_date):
        if row.student_id in statuses:
            statuses[row.student_id].append(row.status)

    report = [
        attendance_model.StudentAttendanceRow(
            student_id=student.id,
            student_code=student.student_code,
            full_name=student.full_name,
            **_count_statuses(statuses[student.id]),
        )
        for student in students
    ]
    report.sort(key=lambda row: (-row.attendance_rate, row.student_code))
    return attendance_model.ClassAttendanceReport(
        class_id=class_obj.id,
        class_name=class_obj.name,
        start_date=start_date,
        end_date=end_date,
        report=report,
    )


def _groups(df: pd.DataFrame, key: str, names: Optional[Dict[str, str]] = None) -> List[attendance_model.AttendanceGroup]:
    grouped = df.groupby(key).agg(total=("status", "size"), present=("present", "sum"), absent=("absent", "sum"))
    return [
        attendance_model.AttendanceGroup(
            key=str(value),
            name=names.get(value) if names else None,
            total=int(row["total"]),
            present=int(row["present"]),
            absent=int(row["absent"]),
            attendance_rate=attendance_rate(int(row["present"]), int(row["total"])),
        )
        for value, row in grouped.iterrows()
    ]


def get_statistics(
    db: DatabaseService,
    school_id: str,
    start_date: date,
    end_date: date,
    class_id: Optional[str] = None,
) -> attendance_model.AttendanceStatistics:
    """School-wide counts for a date range: per status, per class (by name) and per day."""
    _ensure_range(start_date, end_date)
    rows = db.list_attendances_with_class(school_id, start_date, end_date, class_id=class_id)
    if not rows:
        return attendance_model.AttendanceStatistics(total=0, attendance_rate=0.0, by_status={}, by_class=[], daily=[])

    df = pd.DataFrame([
        {"class_id": r.class_id, "day": r.date.isoformat(), "status": r.status}
        for r in rows
    ])
    df["present"] = df["status"] == AttendanceStatus.PRESENT.value
    df["absent"] = df["status"].isin(ABSENT_STATUSES)
    class_names = {r.class_id: r.class_.name if r.class_ else r.class_id for r in rows}

    by_class = _groups(df, "class_id", class_names)
    by_class.sort(key=lambda group: group.name or "")
    return attendance_model.AttendanceStatistics(
        total=len(df),
        attendance_rate=attendance_rate(int(df["present"].sum()), len(df)),
        by_status={k: int(v) for k, v in df.groupby("status").size().items()},
        by_class=by_class,
        daily=_groups(df, "day"),
    )
