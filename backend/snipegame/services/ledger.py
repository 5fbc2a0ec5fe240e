from typing import Callable, List, Optional, TypeVar

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from snipegame import db, timeutils
from snipegame.errors import NotFound, TransactionConflict
from snipegame.models import User, Group, Snipe, PointEntry

T = TypeVar('T')


def run_transaction(work: Callable[[], T], label: str = 'tx', max_attempts: Optional[int] = None) -> T:
    """Run ``work`` and commit, retrying the whole read-modify-write on conflict.

    Every mapped record carries a ``version_id`` column, so an UPDATE against a
    row another process changed since we read it matches nothing and raises
    ``StaleDataError``. The session is rolled back (expiring everything we read)
    and ``work`` runs again against fresh state. Engine errors raised by
    ``work`` roll back and propagate untouched.
    """
    attempts = int(max_attempts or current_app.config.get('TX_MAX_ATTEMPTS', 5))
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            current_app.logger.info(f"[tx-retry] {label} attempt={attempt}/{attempts} stale record")
        except Exception:
            db.session.rollback()
            raise
    current_app.logger.warning(f"[tx-conflict] {label} gave up after {attempts} attempts")
    raise TransactionConflict(f"{label} could not commit after {attempts} attempts")


def load_user(user_id: str) -> User:
    user = db.session.get(User, user_id) if user_id else None
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def load_group(group_id: str) -> Group:
    group = db.session.get(Group, group_id) if group_id else None
    if group is None:
        raise NotFound(f"Group {group_id} not found")
    return group


def load_snipe(snipe_id: str) -> Snipe:
    snipe = db.session.get(Snipe, snipe_id) if snipe_id else None
    if snipe is None:
        raise NotFound(f"Snipe {snipe_id} not found")
    return snipe


def apply_points(user: User, delta: int, reason: str, ref_id: Optional[str] = None) -> int:
    """Apply a point delta to the authoritative balance inside the current transaction.

    Balances are never clamped; accusation penalties may take them negative.
    The mutation is journaled in ``point_entries`` alongside the update.
    """
    user.points = int(user.points or 0) + int(delta)
    db.session.add(user)
    db.session.add(PointEntry(
        user_id=user.id,
        delta=int(delta),
        balance=user.points,
        reason=reason,
        ref_id=ref_id,
        created_at=timeutils.now_ms(),
    ))
    return user.points


def get_point_history(user_id: str, limit: int = 50) -> List[PointEntry]:
    load_user(user_id)
    return (
        PointEntry.query.filter_by(user_id=user_id)
        .order_by(PointEntry.id.desc())
        .limit(limit)
        .all()
    )
