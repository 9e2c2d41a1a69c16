"""OTJ log entry routes (JSON).

Every create or delete re-totals the affected week so weekly records kept in
``entries`` mode stay in step with the log.
"""

import math
from datetime import date

from flask import Blueprint, g, jsonify, request

from otj_portal import weekly
from otj_portal.auth import login_required
from otj_portal.errors import InvalidInput
from otj_portal.models import OtjLogEntry, db
from otj_portal.weeks import parse_week_date, week_bounds

_VALID_ACTIVITY_TYPES = {t for t, _ in OtjLogEntry.ACTIVITY_TYPES}

bp = Blueprint("entries", __name__, url_prefix="/entries")


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


@bp.route("/")
@login_required
def list_entries():
    """Log entries for the current user, newest first, optionally for one week."""
    query = OtjLogEntry.query.filter_by(learner_id=g.user.id)
    week = request.args.get("week", "").strip()
    if week:
        start, end = week_bounds(parse_week_date(week, "week"))
        query = query.filter(OtjLogEntry.entry_date >= start, OtjLogEntry.entry_date <= end)
    entries = query.order_by(OtjLogEntry.entry_date.desc(), OtjLogEntry.id.desc()).all()
    return jsonify({"entries": [e.to_dict() for e in entries]})


@bp.route("/", methods=["POST"])
@login_required
def create():
    """Validate and save a new entry, then re-total its week."""
    data = _payload()
    errors = []

    # --- Date ---
    try:
        entry_date = date.fromisoformat(str(data["entry_date"]))
    except (ValueError, KeyError):
        errors.append(("entry_date", "Date is invalid or missing - please use YYYY-MM-DD."))
        entry_date = None

    # --- Hours ---
    try:
        hours = float(data["hours"])
        if not math.isfinite(hours) or hours <= 0:
            raise ValueError("Hours must be a positive finite number.")
    except (ValueError, KeyError, TypeError):
        errors.append(("hours", "Hours must be a positive number greater than zero (e.g. 2.5)."))
        hours = None

    # --- Activity type ---
    activity_type = data.get("activity_type", "self_study")
    if not isinstance(activity_type, str) or activity_type not in _VALID_ACTIVITY_TYPES:
        errors.append(("activity_type", f"Activity type '{activity_type}' is not recognised."))

    if errors:
        raise InvalidInput(errors[0][0], " ".join(msg for _, msg in errors))

    entry = OtjLogEntry(
        learner_id=g.user.id,
        entry_date=entry_date,
        hours=hours,
        description=data.get("description", ""),
        activity_type=activity_type,
    )
    record = weekly.sync_from_entries(g.user, entry_date, change=lambda: db.session.add(entry))
    return jsonify({
        "entry": entry.to_dict(),
        "week": record.to_dict() if record is not None else None,
    }), 201


@bp.route("/<int:entry_id>", methods=["DELETE"])
@login_required
def delete(entry_id):
    """Delete an entry and re-total its week."""
    entry = OtjLogEntry.query.filter_by(id=entry_id, learner_id=g.user.id).first_or_404()
    record = weekly.sync_from_entries(g.user, entry.entry_date, change=lambda: db.session.delete(entry))
    return jsonify({"deleted": entry_id, "week": record.to_dict() if record is not None else None})
