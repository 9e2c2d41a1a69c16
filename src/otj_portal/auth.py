"""Auth helpers: request context and login/role decorators."""

from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify


@dataclass(frozen=True)
class RequestContext:
    """Who is making the current request.

    Built once per request from ``g.user`` and passed explicitly to service
    functions so they never reach for the logged-in user themselves.
    """

    user_id: int
    role: str

    @property
    def is_tutor(self) -> bool:
        from otj_portal.models import User
        return self.role in User.TUTOR_ROLES


def current_context() -> RequestContext:
    return RequestContext(user_id=g.user.id, role=g.user.role)


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if g.user is None:
            return jsonify({"error": "Unauthorized", "message": "Login required."}), 401
        return f(*args, **kwargs)

    return decorated


def tutor_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if g.user is None:
            return jsonify({"error": "Unauthorized", "message": "Login required."}), 401
        if not g.user.is_tutor:
            return jsonify({"error": "PermissionDenied", "message": "Tutor access required."}), 403
        return f(*args, **kwargs)

    return decorated
