"""Apprenticeship standard listing and selection routes."""

from flask import Blueprint, g, jsonify, request

from otj_portal import weekly
from otj_portal.auth import login_required
from otj_portal.errors import InvalidInput
from otj_portal.standards_data import STANDARDS, STANDARDS_BY_CODE

bp = Blueprint("standards", __name__, url_prefix="/standards")


@bp.route("/")
def list_standards():
    return jsonify({"standards": STANDARDS})


@bp.route("/select", methods=["POST"])
@login_required
def select():
    """Store the chosen standard on the user record.

    Weeks already recorded keep the minimum they were created with; only new
    weeks pick up the new standard's requirement.
    """
    data = request.get_json(silent=True) or request.form
    code = str(data.get("standard", "")).strip()
    standard = STANDARDS_BY_CODE.get(code)
    if standard is None or not standard["available"]:
        raise InvalidInput("standard", f"'{code}' is not an available apprenticeship standard.")

    g.user.selected_standard = code
    weekly.commit("selecting an apprenticeship standard")
    return jsonify({"selected_standard": code, "minimum_weekly_otj_hours": standard["minimum_weekly_otj_hours"]})
