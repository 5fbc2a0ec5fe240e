import time
from typing import Set

from snipegame import db, socketio, timeutils
from snipegame.errors import AlreadyResolved, WindowStillOpen
from snipegame.models import Snipe
from .snipes import resolve_expired_snipe


_scheduled_snipes: Set[str] = set()


def schedule_snipe_expiry(app, snipe_id: str) -> None:
    """Schedule the timeout resolution of a pending snipe.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per snipe
    - Fires once the dodge window (plus EXPIRY_GRACE_MS) has elapsed, measured
      from the stored snipe timestamp
    - Losing the race to a dodge is fine: the resolution reports AlreadyResolved
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        snipe = db.session.get(Snipe, snipe_id)
        if not snipe or not snipe.is_pending:
            return

        if snipe_id in _scheduled_snipes:
            app.logger.info(f"[timer-skip] snipe={snipe_id} already scheduled")
            return

        _scheduled_snipes.add(snipe_id)

        window = int(app.config.get('DODGE_WINDOW_MS', 20000))
        grace = int(app.config.get('EXPIRY_GRACE_MS', 250))
        deadline = snipe.timestamp + window + grace
        delay = max(0.0, (deadline - timeutils.now_ms()) / 1000.0)
        app.logger.info(f"[timer-set] snipe={snipe_id} delay={delay:.3f}s deadline={deadline}")

    def _worker(sid: str, wait: float):
        time.sleep(wait)
        with app.app_context():
            _scheduled_snipes.discard(sid)
            try:
                resolved = resolve_expired_snipe(sid)
            except AlreadyResolved:
                app.logger.info(f"[timer-abort] snipe={sid} already resolved")
                return
            except WindowStillOpen:
                # The sweep picks it up later
                app.logger.warning(f"[timer-early] snipe={sid} fired inside the dodge window")
                return
            app.logger.info(f"[timer-fire] snipe={sid} status={resolved.status} points={resolved.points}")

    if app.config.get('TESTING'):
        _worker(snipe_id, delay)
    else:
        socketio.start_background_task(_worker, snipe_id, delay)


def schedule_pending_snipes(app) -> int:
    """Re-arm timers for every pending snipe, e.g. after a restart."""
    with app.app_context():
        pending_ids = [s.id for s in Snipe.query.filter_by(status='pending').all()]
    for snipe_id in pending_ids:
        schedule_snipe_expiry(app, snipe_id)
    return len(pending_ids)
