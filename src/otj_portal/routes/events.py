"""SSE streaming endpoint for live weekly-progress updates."""

import queue

from flask import Blueprint, Response, g, stream_with_context

from otj_portal import sse, weekly
from otj_portal.auth import login_required

bp = Blueprint("events", __name__, url_prefix="/events")

KEEPALIVE_SECONDS = 30


@bp.route("/stream")
@login_required
def stream():
    """SSE endpoint.

    Opens with a ``weekly_otj_snapshot`` of the current week so a fresh
    dashboard can render its reminder straight away, then relays
    ``weekly_otj_updated`` events.  A keepalive comment goes out every 30s to
    stop proxies closing the connection.
    """
    learner_id = g.user.id
    snapshot = sse.format_event("weekly_otj_snapshot", weekly.current_week_summary(g.user))
    client_queue = sse.subscribe(learner_id)

    @stream_with_context
    def generate():
        try:
            yield snapshot
            while True:
                try:
                    yield client_queue.get(timeout=KEEPALIVE_SECONDS)
                except queue.Empty:
                    yield ": keepalive\n\n"
        finally:
            sse.unsubscribe(learner_id, client_queue)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
