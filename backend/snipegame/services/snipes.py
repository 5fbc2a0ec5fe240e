"""Snipe lifecycle.

A snipe starts ``pending`` and moves exactly once, to ``dodged`` (the target
reacted in time, or held a shield) or to ``completed`` (the dodge window ran
out and the sniper is paid). Both transitions update the snipe row under its
``version_id``, so when a dodge and a timeout race only one commit lands; the
other attempt is retried, re-reads the terminal status and gets
``AlreadyResolved``.
"""
from typing import List, Optional

from flask import current_app

from snipegame import db, group_sync, timeutils
from snipegame.errors import (
    AlreadyResolved, InvalidMember, NotMember, NotTarget, TransactionConflict, WindowExpired, WindowStillOpen,
)
from snipegame.models import Snipe, SNIPE_PENDING, SNIPE_DODGED, SNIPE_COMPLETED
from . import powerups
from .ledger import run_transaction, load_user, load_group, load_snipe, apply_points
from .notifications import publish_change, notify_sniped


def dodge_window_ms() -> int:
    return int(current_app.config.get('DODGE_WINDOW_MS', 20000))


def create_snipe(sniper_id: str, target_id: str, group_id: str, photo_ref: Optional[str] = None) -> Snipe:
    """Record a new pending snipe and lock in its point value.

    Power-up modifiers are resolved and consumed in the same transaction that
    inserts the snipe, and the flags used are snapshotted on the row.
    """
    if sniper_id == target_id:
        raise InvalidMember("A player cannot snipe themselves")
    base_points = int(current_app.config.get('BASE_SNIPE_POINTS', 1))

    def work():
        group = load_group(group_id)
        sniper = load_user(sniper_id)
        target = load_user(target_id)
        for user_id in (sniper_id, target_id):
            if not group.has_member(user_id):
                raise NotMember(f"User {user_id} is not a member of group {group_id}")

        outcome = powerups.resolve_snipe_points(sniper, target, base_points)
        snipe = Snipe(
            sniper_id=sniper_id,
            target_id=target_id,
            group_id=group_id,
            timestamp=timeutils.now_ms(),
            status=SNIPE_PENDING,
            points=outcome.points,
            powerups=outcome.snapshot(),
            photo_ref=photo_ref,
        )
        db.session.add_all([snipe, sniper, target])
        return snipe

    snipe = run_transaction(work, label=f"create-snipe sniper={sniper_id} target={target_id}")
    current_app.logger.info(
        f"[snipe-create] snipe={snipe.id} sniper={sniper_id} target={target_id} group={group_id} "
        f"points={snipe.points} powerups={snipe.powerups}"
    )
    notify_sniped(snipe)
    publish_change('snipes', snipe.id, {'status': snipe.status})
    if snipe.powerups.get(powerups.DOUBLE_POINTS):
        publish_change('users', sniper_id)
    if snipe.powerups.get(powerups.HALF_POINTS):
        publish_change('users', target_id)
    return snipe


def dodge_snipe(snipe_id: str, target_id: str) -> Snipe:
    """Let the target dodge a pending snipe.

    Holding a shield makes the dodge succeed at any time, spends one shield
    use and pays the larger award. Otherwise the dodge must land within the
    window measured from the stored snipe timestamp.
    """
    cfg = current_app.config
    window = dodge_window_ms()

    def work():
        snipe = load_snipe(snipe_id)
        if snipe.target_id != target_id:
            raise NotTarget(f"User {target_id} is not the target of snipe {snipe_id}")
        if not snipe.is_pending:
            raise AlreadyResolved(f"Snipe {snipe_id} is already {snipe.status}")

        target = load_user(target_id)
        now = timeutils.now_ms()
        shielded = powerups.has_powerup(target, powerups.SHIELD)
        if not shielded and timeutils.elapsed_ms(snipe.timestamp) > window:
            raise WindowExpired(f"Dodge window for snipe {snipe_id} has expired")
        if shielded:
            powerups.consume(target, powerups.SHIELD)

        award = int(cfg.get('SHIELD_DODGE_POINTS', 10) if shielded else cfg.get('DODGE_POINTS', 5))
        snipe.status = SNIPE_DODGED
        snipe.resolved_at = now
        db.session.add(snipe)
        apply_points(target, award, 'dodge', ref_id=snipe.id)
        return snipe, award, shielded

    snipe, award, shielded = run_transaction(work, label=f"dodge snipe={snipe_id}")
    current_app.logger.info(f"[snipe-dodge] snipe={snipe_id} target={target_id} award={award} shield={shielded}")
    group_sync.notify([target_id])
    publish_change('snipes', snipe_id, {'status': SNIPE_DODGED})
    publish_change('users', target_id)
    return snipe


def resolve_expired_snipe(snipe_id: str) -> Snipe:
    """Complete a pending snipe whose dodge window has elapsed and pay the sniper.

    Safe for any number of concurrent callers: exactly one wins, the others
    raise ``AlreadyResolved``.
    """
    window = dodge_window_ms()

    def work():
        snipe = load_snipe(snipe_id)
        if not snipe.is_pending:
            raise AlreadyResolved(f"Snipe {snipe_id} is already {snipe.status}")
        now = timeutils.now_ms()
        if timeutils.elapsed_ms(snipe.timestamp) <= window:
            raise WindowStillOpen(f"Snipe {snipe_id} can still be dodged")

        sniper = load_user(snipe.sniper_id)
        snipe.status = SNIPE_COMPLETED
        snipe.resolved_at = now
        db.session.add(snipe)
        apply_points(sniper, snipe.points, 'snipe', ref_id=snipe.id)
        return snipe

    snipe = run_transaction(work, label=f"resolve snipe={snipe_id}")
    current_app.logger.info(f"[snipe-complete] snipe={snipe_id} sniper={snipe.sniper_id} points={snipe.points}")
    group_sync.notify([snipe.sniper_id])
    publish_change('snipes', snipe_id, {'status': SNIPE_COMPLETED})
    publish_change('users', snipe.sniper_id)
    return snipe


def sweep_expired_snipes() -> List[Snipe]:
    """Resolve every pending snipe past its window; races lost to a dodge are skipped."""
    cutoff = timeutils.now_ms() - dodge_window_ms()
    expired_ids = [
        s.id for s in Snipe.query.filter(Snipe.status == SNIPE_PENDING, Snipe.timestamp < cutoff)
        .order_by(Snipe.timestamp).all()
    ]
    resolved = []
    for snipe_id in expired_ids:
        try:
            resolved.append(resolve_expired_snipe(snipe_id))
        except (AlreadyResolved, WindowStillOpen) as exc:
            current_app.logger.info(f"[sweep-skip] snipe={snipe_id} reason={exc.code}")
        except TransactionConflict:
            # Left pending; the next sweep or its timer retries it
            current_app.logger.warning(f"[sweep-conflict] snipe={snipe_id} still contended, skipping")
    return resolved


def get_snipe(snipe_id: str) -> Snipe:
    return load_snipe(snipe_id)


def get_pending_snipes_for_target(target_id: str) -> List[Snipe]:
    load_user(target_id)
    return (
        Snipe.query.filter_by(target_id=target_id, status=SNIPE_PENDING)
        .order_by(Snipe.timestamp)
        .all()
    )
