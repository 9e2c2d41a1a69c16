"""Server-Sent Events (SSE) broadcast manager.

Keeps one queue per connected dashboard.  Weekly-record changes are published
to every stream the learner has open so progress bars and reminders refresh
without polling.
"""

import json
import logging
import queue
import threading

logger = logging.getLogger(__name__)

QUEUE_SIZE = 50

# Map of learner_id -> queues of connected clients
_subscribers: dict[int, list[queue.Queue]] = {}
_lock = threading.Lock()


def subscribe(learner_id: int) -> queue.Queue:
    """Register a new SSE client for *learner_id* and return its queue."""
    q = queue.Queue(maxsize=QUEUE_SIZE)
    with _lock:
        _subscribers.setdefault(learner_id, []).append(q)
    return q


def unsubscribe(learner_id: int, q: queue.Queue):
    with _lock:
        clients = _subscribers.get(learner_id, [])
        if q in clients:
            clients.remove(q)
        if not clients:
            _subscribers.pop(learner_id, None)


def subscriber_count(learner_id: int) -> int:
    with _lock:
        return len(_subscribers.get(learner_id, []))


def format_event(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def publish(learner_id: int, event_type: str, data: dict) -> int:
    """Push an event to every stream open for *learner_id*.

    Clients whose queue is full are assumed gone and dropped.  Returns the
    number of clients the event was delivered to.
    """
    message = format_event(event_type, data)
    delivered = 0
    with _lock:
        clients = _subscribers.get(learner_id, [])
        dead = []
        for q in clients:
            try:
                q.put_nowait(message)
                delivered += 1
            except queue.Full:
                dead.append(q)
        for q in dead:
            clients.remove(q)
        if dead:
            logger.debug("Dropped %d stalled SSE client(s) for learner=%s", len(dead), learner_id)
    return delivered
