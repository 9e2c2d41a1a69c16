"""Weekly OTJ record service.

Reads and writes :class:`WeeklyOtjRecord` rows and derives the progress
payloads the routes return.  Must be called within an active Flask
application context.

Absence of a record is returned as ``None``.  Database errors are logged and
re-raised as :class:`StorageFailure` so they are never confused with "no
hours logged yet".
"""

import logging
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from otj_portal import sse
from otj_portal.errors import (
    InvalidInput,
    OtjError,
    PermissionDenied,
    RecordNotFound,
    StorageFailure,
    is_unique_constraint_error,
)
from otj_portal.models import OtjLogEntry, User, WeeklyOtjRecord, db
from otj_portal.progress import OVERRIDE_STATUSES, calculate_progress, derive_status, rollup_weekly_hours, validate_hours
from otj_portal.standards_data import get_minimum_otj_hours
from otj_portal.weeks import format_week_range, recent_week_starts, week_bounds

logger = logging.getLogger(__name__)

MANUAL = "manual"
ENTRIES = "entries"
_VALID_ENTRY_MODES = {m for m, _ in WeeklyOtjRecord.ENTRY_MODES}


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


def can_view_learner(ctx, learner_id: int) -> bool:
    """A learner may see their own weeks; tutor roles may see anyone's."""
    return ctx.user_id == learner_id or ctx.is_tutor


def ensure_can_view(ctx, learner_id: int):
    if not can_view_learner(ctx, learner_id):
        raise PermissionDenied("You don't have permission to access this learner's OTJ records.")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def minimum_hours_for(learner: User) -> float:
    """Weekly minimum for *learner*'s selected standard (or the configured default)."""
    code = learner.selected_standard or current_app.config["OTJ_DEFAULT_STANDARD"]
    return get_minimum_otj_hours(code)


def get_learner(learner_id: int) -> User:
    try:
        learner = db.session.get(User, learner_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load learner id=%s", learner_id)
        raise StorageFailure("Could not load the learner.") from exc
    if learner is None:
        raise RecordNotFound(f"Learner {learner_id} not found.")
    return learner


def get_weekly_record(learner_id: int, week_date: date) -> WeeklyOtjRecord | None:
    """Return the record for the week containing *week_date*, or ``None``."""
    start, _ = week_bounds(week_date)
    try:
        return WeeklyOtjRecord.query.filter_by(learner_id=learner_id, week_start_date=start).first()
    except SQLAlchemyError as exc:
        logger.exception("Failed to read weekly OTJ record learner=%s week=%s", learner_id, start)
        raise StorageFailure("Could not read the weekly OTJ record.") from exc


def get_record_by_id(record_id: int) -> WeeklyOtjRecord:
    try:
        record = db.session.get(WeeklyOtjRecord, record_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to read weekly OTJ record id=%s", record_id)
        raise StorageFailure("Could not read the weekly OTJ record.") from exc
    if record is None:
        raise RecordNotFound("Weekly OTJ record not found.")
    return record


def _filtered_query(learner_id: int, start: date | None, end: date | None):
    query = WeeklyOtjRecord.query.filter_by(learner_id=learner_id)
    if start is not None:
        query = query.filter(WeeklyOtjRecord.week_start_date >= start)
    if end is not None:
        query = query.filter(WeeklyOtjRecord.week_start_date <= end)
    return query


def list_weekly_records(
    learner_id: int,
    start: date | None = None,
    end: date | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[WeeklyOtjRecord]:
    """Records for *learner_id*, newest week first.

    *start*/*end* filter on ``week_start_date`` (inclusive).  *limit* and
    *offset* page the result independently of each other.
    """
    query = _filtered_query(learner_id, start, end).order_by(WeeklyOtjRecord.week_start_date.desc())
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    try:
        return query.all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to list weekly OTJ records learner=%s", learner_id)
        raise StorageFailure("Could not list weekly OTJ records.") from exc


def count_weekly_records(learner_id: int, start: date | None = None, end: date | None = None) -> int:
    try:
        return _filtered_query(learner_id, start, end).count()
    except SQLAlchemyError as exc:
        logger.exception("Failed to count weekly OTJ records learner=%s", learner_id)
        raise StorageFailure("Could not count weekly OTJ records.") from exc


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def commit(what: str):
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Commit failed while %s", what)
        raise StorageFailure(f"Could not save changes while {what}.") from exc


def _notify(record: WeeklyOtjRecord):
    """Push the new progress to any dashboard the learner has open."""
    payload = record.progress().as_dict()
    payload["week_start_date"] = record.week_start_date.isoformat()
    payload["status"] = record.status()
    sse.publish(record.learner_id, "weekly_otj_updated", payload)


def _stage_record(learner: User, start: date, end: date, hours: float, notes: str | None,
                  entry_mode: str) -> tuple[WeeklyOtjRecord, bool]:
    """Add or modify the week's record in the session without committing."""
    record = get_weekly_record(learner.id, start)
    created = record is None
    if created:
        record = WeeklyOtjRecord(
            learner_id=learner.id,
            week_start_date=start,
            week_end_date=end,
            total_hours=hours,
            minimum_required_hours=minimum_hours_for(learner),
            entry_mode=entry_mode,
            notes=notes or "",
        )
        db.session.add(record)
    else:
        record.total_hours = hours
        record.entry_mode = entry_mode
        if notes is not None:
            record.notes = notes
    return record, created


def upsert_weekly_record(
    learner: User,
    week_date: date,
    total_hours,
    notes: str | None = None,
    entry_mode: str = MANUAL,
    max_hours: float | None = None,
) -> tuple[WeeklyOtjRecord, bool]:
    """Create or update the single record for *learner* and the week of *week_date*.

    Returns ``(record, created)``.  The minimum is copied from the learner's
    standard only when the record is created; later submissions leave it
    alone.  Field writes are last-write-wins.

    Two requests racing to create the same week both try an INSERT; the loser
    hits the (learner_id, week_start_date) unique constraint, rolls back and
    goes round again as an UPDATE of the winner's row.
    """
    hours = validate_hours(total_hours, "total_hours", maximum=max_hours)
    if entry_mode not in _VALID_ENTRY_MODES:
        raise InvalidInput("entry_mode", f"Entry mode '{entry_mode}' is not recognised.")
    start, end = week_bounds(week_date)

    for attempt in range(2):
        record, created = _stage_record(learner, start, end, hours, notes, entry_mode)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if attempt == 0 and is_unique_constraint_error(exc):
                logger.info(
                    "Weekly OTJ record learner=%s week=%s created concurrently, retrying as update",
                    learner.id, start,
                )
                continue
            logger.exception("Weekly OTJ upsert failed learner=%s week=%s", learner.id, start)
            raise StorageFailure("Could not save the weekly OTJ record.") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Weekly OTJ upsert failed learner=%s week=%s", learner.id, start)
            raise StorageFailure("Could not save the weekly OTJ record.") from exc

        logger.debug(
            "Weekly OTJ record %s learner=%s week=%s hours=%.2f",
            "created" if created else "updated", learner.id, start, hours,
        )
        _notify(record)
        return record, created

    raise StorageFailure("Could not save the weekly OTJ record.")


def update_weekly_record(record: WeeklyOtjRecord, total_hours=None, notes: str | None = None,
                         max_hours: float | None = None) -> WeeklyOtjRecord:
    """Edit an id-addressed record in place (hours and/or notes)."""
    if total_hours is not None:
        record.total_hours = validate_hours(total_hours, "total_hours", maximum=max_hours)
        record.entry_mode = MANUAL
    if notes is not None:
        record.notes = notes
    commit("updating a weekly OTJ record")
    _notify(record)
    return record


def review_weekly_record(ctx, record_id: int, notes: str | None = None, outcome: str | None = None,
                         now: datetime | None = None) -> WeeklyOtjRecord:
    """Record a tutor's acknowledgement of a week.

    *outcome* (``complete``/``incomplete``) overrides the computed status;
    leaving it out keeps whatever override was there before.  Notes are only
    replaced when given.
    """
    if not ctx.is_tutor:
        raise PermissionDenied("Tutor access required.")
    if outcome is not None and outcome not in OVERRIDE_STATUSES:
        raise InvalidInput("outcome", f"Outcome must be one of: {', '.join(OVERRIDE_STATUSES)}.")

    record = get_record_by_id(record_id)
    if record.learner_id == ctx.user_id:
        raise PermissionDenied("Tutors cannot review their own OTJ records.")

    record.reviewed_by_id = ctx.user_id
    record.tutor_review_date = now or datetime.utcnow()
    if notes is not None:
        record.tutor_notes = notes
    if outcome is not None:
        record.status_override = outcome
    commit("reviewing a weekly OTJ record")
    logger.info("Weekly OTJ record id=%s reviewed by user=%s outcome=%s", record.id, ctx.user_id, outcome)
    _notify(record)
    return record


def entry_hours_for_week(learner_id: int, week_date: date) -> float:
    start, end = week_bounds(week_date)
    try:
        total = (
            db.session.query(func.sum(OtjLogEntry.hours))
            .filter(
                OtjLogEntry.learner_id == learner_id,
                OtjLogEntry.entry_date >= start,
                OtjLogEntry.entry_date <= end,
            )
            .scalar()
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to sum OTJ log entries learner=%s week=%s", learner_id, start)
        raise StorageFailure("Could not total the week's OTJ log entries.") from exc
    return round(total or 0.0, 2)


def sync_from_entries(learner: User, week_date: date, change=None) -> WeeklyOtjRecord | None:
    """Recompute the week's total from the learner's log entries.

    Weeks whose total was entered by hand are left untouched.  No record is
    created for a week that has neither a record nor any logged hours.

    *change*, when given, stages an edit to the log (adding or deleting an
    entry) in the session.  It is committed in the same transaction as the
    new weekly total, so a failure leaves neither in the database.
    """
    start, end = week_bounds(week_date)

    for attempt in range(2):
        retotalled = False
        try:
            if change is not None:
                change()
                db.session.flush()
            record = get_weekly_record(learner.id, start)
            if record is None or record.entry_mode != MANUAL:
                total = entry_hours_for_week(learner.id, start)
                if record is not None or total > 0:
                    record, _ = _stage_record(learner, start, end, total, None, ENTRIES)
                    retotalled = True
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if attempt == 0 and is_unique_constraint_error(exc):
                logger.info("Weekly OTJ record learner=%s week=%s created concurrently, retrying", learner.id, start)
                continue
            logger.exception("OTJ log sync failed learner=%s week=%s", learner.id, start)
            raise StorageFailure("Could not save the OTJ log change.") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("OTJ log sync failed learner=%s week=%s", learner.id, start)
            raise StorageFailure("Could not save the OTJ log change.") from exc
        except OtjError:
            db.session.rollback()
            raise

        if retotalled:
            _notify(record)
        return record

    raise StorageFailure("Could not save the OTJ log change.")


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


def current_week_summary(learner: User, today: date | None = None) -> dict:
    """Progress for the week containing *today*.

    A missing record is reported as zero hours so far against the learner's
    current standard minimum.
    """
    today = today or date.today()
    start, end = week_bounds(today)
    record = get_weekly_record(learner.id, start)
    if record is None:
        total, minimum = 0.0, minimum_hours_for(learner)
        status = derive_status(total, minimum, end, today)
    else:
        total, minimum = record.total_hours, record.minimum_required_hours
        status = record.status(today)

    progress = calculate_progress(total, minimum)
    summary = progress.as_dict()
    summary.update(
        week_start_date=start.isoformat(),
        week_end_date=end.isoformat(),
        week_range=format_week_range(start, end),
        status=status,
        needs_reminder=not progress.met,
        record=record.to_dict(today) if record is not None else None,
    )
    return summary


def weekly_history(learner: User, weeks: int = 12, today: date | None = None) -> list[dict]:
    """Progress for each of the last *weeks* weeks, oldest first.

    Hours come from the weekly records where they exist, otherwise from the
    sum of log entries in that week.
    """
    today = today or date.today()
    starts = recent_week_starts(today, weeks)
    first, last_end = starts[0], week_bounds(starts[-1])[1]
    try:
        entries = (
            db.session.query(OtjLogEntry.entry_date, OtjLogEntry.hours)
            .filter(
                OtjLogEntry.learner_id == learner.id,
                OtjLogEntry.entry_date >= first,
                OtjLogEntry.entry_date <= last_end,
            )
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Failed to load OTJ history learner=%s", learner.id)
        raise StorageFailure("Could not load OTJ history.") from exc

    records = {r.week_start_date: r for r in list_weekly_records(learner.id, start=first, end=starts[-1])}
    entry_totals = rollup_weekly_hours(entries, starts)
    default_minimum = minimum_hours_for(learner)

    history = []
    for start in starts:
        end = week_bounds(start)[1]
        record = records.get(start)
        if record is not None:
            total, minimum, status = record.total_hours, record.minimum_required_hours, record.status(today)
        else:
            total, minimum = entry_totals[start], default_minimum
            status = derive_status(total, minimum, end, today)
        item = calculate_progress(total, minimum).as_dict()
        item.update(
            week_start_date=start.isoformat(),
            week_range=format_week_range(start, end),
            status=status,
            record_id=record.id if record is not None else None,
        )
        history.append(item)
    return history
