"""Google OAuth authentication routes."""

import logging

from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.flask_client import OAuth
from flask import Blueprint, current_app, g, jsonify, redirect, session, url_for
from flask_wtf.csrf import generate_csrf

from otj_portal.models import User, db

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")
oauth = OAuth()


def init_oauth(app):
    oauth.init_app(app)
    oauth.register(
        name="google",
        client_id=app.config.get("GOOGLE_CLIENT_ID"),
        client_secret=app.config.get("GOOGLE_CLIENT_SECRET"),
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )


def _email_set(config_key: str) -> set[str]:
    raw = current_app.config.get(config_key) or ""
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def role_for_email(email: str) -> str:
    """New accounts listed in TUTOR_EMAILS become assessors, everyone else a learner."""
    return "assessor" if email.lower() in _email_set("TUTOR_EMAILS") else "learner"


@bp.route("/me")
def me():
    if g.user is None:
        return jsonify({"authenticated": False, "login_url": url_for("auth.google_login")}), 401
    return jsonify({
        "authenticated": True,
        "id": g.user.id,
        "email": g.user.email,
        "name": g.user.name,
        "role": g.user.role,
        "selected_standard": g.user.selected_standard,
    })


@bp.route("/csrf")
def csrf_token():
    """Token for state-changing requests; send it back in the X-CSRFToken header."""
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/google")
def google_login():
    if not oauth.google.client_id or not oauth.google.client_secret:
        return jsonify({
            "error": "OAuthNotConfigured",
            "message": (
                "Google OAuth is not configured. Set GOOGLE_CLIENT_ID and "
                "GOOGLE_CLIENT_SECRET environment variables, or use "
                "DEV_AUTO_LOGIN_EMAIL for local development."
            ),
        }), 503
    redirect_uri = url_for("auth.callback", _external=True)
    return oauth.google.authorize_redirect(redirect_uri)


@bp.route("/callback")
def callback():
    try:
        token = oauth.google.authorize_access_token()
    except OAuthError as e:
        logger.warning("Google sign-in failed: %s", e)
        return jsonify({"error": "OAuthError", "message": f"Google sign-in failed: {e.description or str(e)}"}), 401
    userinfo = token.get("userinfo")

    email = userinfo["email"].lower()
    allowed = _email_set("ALLOWED_EMAILS")
    if allowed and email not in allowed:
        return jsonify({"error": "PermissionDenied", "message": "This account is not allowed to sign in."}), 403

    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(
            email=email,
            name=userinfo.get("name", email),
            google_sub=userinfo.get("sub"),
            role=role_for_email(email),
        )
        db.session.add(user)
        db.session.commit()
        logger.info("Created user id=%s role=%s", user.id, user.role)
    elif user.google_sub is None:
        user.google_sub = userinfo.get("sub")
        db.session.commit()

    session["user_id"] = user.id
    next_url = session.pop("next", None)
    return redirect(next_url or url_for("weekly.current"))


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"authenticated": False})
