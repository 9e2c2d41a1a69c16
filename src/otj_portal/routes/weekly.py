"""Weekly OTJ tracking routes (JSON)."""

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request

from otj_portal import weekly
from otj_portal.auth import current_context, login_required, tutor_required
from otj_portal.errors import InvalidInput
from otj_portal.weeks import format_week_range, parse_week_date, week_bounds

bp = Blueprint("weekly", __name__, url_prefix="/weekly")


def _payload() -> dict:
    """Request body as a dict, from JSON or a classic form post."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _optional_date(name: str):
    raw = request.args.get(name, "").strip()
    return parse_week_date(raw, name) if raw else None


def _optional_count(name: str):
    raw = request.args.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidInput(name, f"{name} must be a whole number.") from None
    if value < 0:
        raise InvalidInput(name, f"{name} cannot be negative.")
    return value


@bp.route("/current")
@login_required
def current():
    """Progress for the logged-in learner's current week."""
    return jsonify(weekly.current_week_summary(g.user))


@bp.route("/history")
@login_required
def history():
    """Per-week progress for the last ``?weeks=`` weeks (default 12, max 52)."""
    weeks = max(1, min(request.args.get("weeks", 12, type=int), 52))
    return jsonify({"weeks": weekly.weekly_history(g.user, weeks=weeks)})


@bp.route("/learner/<int:learner_id>")
@login_required
def learner_records(learner_id):
    """All weekly records for a learner, newest first, with optional filters."""
    weekly.ensure_can_view(current_context(), learner_id)
    start = _optional_date("start")
    end = _optional_date("end")
    limit = _optional_count("limit")
    offset = _optional_count("offset")

    records = weekly.list_weekly_records(learner_id, start=start, end=end, limit=limit, offset=offset)
    total = weekly.count_weekly_records(learner_id, start=start, end=end)
    return jsonify({"records": [r.to_dict() for r in records], "total": total})


@bp.route("/learner/<int:learner_id>/week/<week_date>")
@login_required
def learner_week(learner_id, week_date):
    """The record for the week containing *week_date*.

    A week with nothing logged yet returns 200 with ``"record": null``.
    """
    weekly.ensure_can_view(current_context(), learner_id)
    start, end = week_bounds(parse_week_date(week_date))
    record = weekly.get_weekly_record(learner_id, start)
    return jsonify({
        "learner_id": learner_id,
        "week_start_date": start.isoformat(),
        "week_end_date": end.isoformat(),
        "week_range": format_week_range(start, end),
        "record": record.to_dict() if record is not None else None,
    })


@bp.route("/", methods=["POST"])
@login_required
def submit():
    """Create or update the weekly total for a learner.

    Body fields: ``total_hours`` (required), ``notes``, ``week_date`` (any
    date in the week, defaults to today) and ``learner_id`` (defaults to the
    caller; tutors may submit for other learners).
    """
    data = _payload()
    ctx = current_context()

    learner_id = data.get("learner_id") or ctx.user_id
    try:
        learner_id = int(learner_id)
    except (TypeError, ValueError):
        raise InvalidInput("learner_id", "learner_id must be an integer.") from None
    weekly.ensure_can_view(ctx, learner_id)
    learner = g.user if learner_id == ctx.user_id else weekly.get_learner(learner_id)

    week_date = parse_week_date(data["week_date"]) if data.get("week_date") else date.today()
    record, created = weekly.upsert_weekly_record(
        learner,
        week_date,
        data.get("total_hours"),
        notes=data.get("notes"),
        max_hours=current_app.config["OTJ_MAX_WEEKLY_HOURS"],
    )
    return jsonify(record.to_dict()), 201 if created else 200


@bp.route("/<int:record_id>")
@login_required
def detail(record_id):
    record = weekly.get_record_by_id(record_id)
    weekly.ensure_can_view(current_context(), record.learner_id)
    return jsonify(record.to_dict())


@bp.route("/<int:record_id>", methods=["PUT"])
@login_required
def update(record_id):
    """Edit hours and/or notes of an existing record."""
    record = weekly.get_record_by_id(record_id)
    weekly.ensure_can_view(current_context(), record.learner_id)
    data = _payload()
    record = weekly.update_weekly_record(
        record,
        total_hours=data.get("total_hours"),
        notes=data.get("notes"),
        max_hours=current_app.config["OTJ_MAX_WEEKLY_HOURS"],
    )
    return jsonify(record.to_dict())


@bp.route("/<int:record_id>/review", methods=["POST"])
@tutor_required
def review(record_id):
    """Tutor acknowledgement, with optional notes and ``outcome`` override."""
    data = _payload()
    record = weekly.review_weekly_record(
        current_context(),
        record_id,
        notes=data.get("notes"),
        outcome=data.get("outcome") or None,
    )
    return jsonify(record.to_dict())
