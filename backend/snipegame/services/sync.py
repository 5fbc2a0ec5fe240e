"""Group point cache synchronizer.

``User.points`` is authoritative; every group keeps a denormalized copy of
each member's balance in ``Group.members[].points``. After a ledger commit the
affected user ids are handed to the synchronizer, which rewrites the cached
value in every group the user belongs to.

Each write copies the user's *current* balance (read inside the group's own
transaction) rather than a delta, so repeated or reordered propagation always
converges. Failures are retried and logged, never raised back into the
operation that changed the points.
"""
from typing import Iterable, Optional
import queue
import threading
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from snipegame import db, socketio
from snipegame.errors import TransactionConflict
from snipegame.models import User, Group
from .ledger import run_transaction
from .notifications import publish_change


def write_member_points(group_id: str, user_id: str) -> Optional[int]:
    """Copy the user's balance into the group's member entry.

    Returns the value written, or None when nothing had to change.
    """
    user = db.session.get(User, user_id)
    group = db.session.get(Group, group_id)
    if user is None or group is None:
        return None
    members = [dict(m) for m in group.members or []]
    written = None
    for member in members:
        if member.get('id') == user_id and member.get('points') != user.points:
            member['points'] = user.points
            written = user.points
    if written is not None:
        group.members = members
        db.session.add(group)
    return written


class GroupCacheSynchronizer:
    def __init__(self, app=None):
        self.app = None
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._queued = set()
        self._lock = threading.Lock()
        self._worker_running = False
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        app.extensions['group_sync'] = self

    @staticmethod
    def _runs_inline(app) -> bool:
        # Tests propagate synchronously unless they opt into the worker
        return bool(app.config.get('TESTING')) and not app.config.get('SYNC_IN_BACKGROUND')

    def notify(self, user_ids: Iterable[str]) -> None:
        """Schedule propagation for users whose balance just changed."""
        app = current_app._get_current_object()
        ids = [uid for uid in dict.fromkeys(user_ids) if uid]
        if not ids:
            return
        if self._runs_inline(app):
            for uid in ids:
                self.propagate(uid)
            return
        with self._lock:
            for uid in ids:
                if uid not in self._queued:
                    self._queued.add(uid)
                    self._queue.put(uid)
            start = not self._worker_running
            self._worker_running = True
        if start:
            socketio.start_background_task(self._run, app)

    def pending(self) -> int:
        with self._lock:
            return len(self._queued)

    def propagate(self, user_id: str) -> bool:
        """Rewrite the cached balance in every group of ``user_id``.

        Returns True once every group holds the authoritative value.
        """
        user = db.session.get(User, user_id)
        if user is None:
            current_app.logger.warning(f"[sync-skip] user={user_id} not found")
            return True
        group_ids = list(user.group_ids or [])
        failed = [gid for gid in group_ids if not self._propagate_to_group(gid, user_id)]
        if failed:
            current_app.logger.error(f"[sync-fail] user={user_id} groups={failed}")
            return False
        return True

    def _propagate_to_group(self, group_id: str, user_id: str) -> bool:
        cfg = current_app.config
        attempts = int(cfg.get('SYNC_MAX_ATTEMPTS', 5))
        delay = float(cfg.get('SYNC_RETRY_DELAY_SEC', 0.5))
        for attempt in range(1, attempts + 1):
            try:
                written = run_transaction(
                    lambda: write_member_points(group_id, user_id),
                    label=f"sync group={group_id} user={user_id}",
                )
            except (SQLAlchemyError, TransactionConflict) as exc:
                db.session.rollback()
                current_app.logger.warning(
                    f"[sync-retry] group={group_id} user={user_id} attempt={attempt}/{attempts} error={exc}"
                )
                if attempt < attempts and delay > 0:
                    time.sleep(delay)
                continue
            if written is not None:
                publish_change('groups', group_id, {'member_id': user_id, 'points': written})
            return True
        return False

    def _requeue(self, user_id: str) -> None:
        with self._lock:
            if user_id not in self._queued:
                self._queued.add(user_id)
                self._queue.put(user_id)

    def _run(self, app) -> None:
        delay = float(app.config.get('SYNC_RETRY_DELAY_SEC', 0.5))
        drained = False
        try:
            while True:
                with self._lock:
                    if self._queue.empty():
                        self._worker_running = False
                        drained = True
                        return
                    user_id = self._queue.get()
                    self._queued.discard(user_id)
                with app.app_context():
                    try:
                        converged = self.propagate(user_id)
                    except SQLAlchemyError as exc:
                        db.session.rollback()
                        app.logger.error(f"[sync-fail] user={user_id} error={exc}")
                        converged = False
                if not converged:
                    # Keep trying until every group holds the authoritative value
                    if delay > 0:
                        time.sleep(delay)
                    self._requeue(user_id)
        finally:
            if not drained:
                # Let the next notify() start a fresh worker
                with self._lock:
                    self._worker_running = False
