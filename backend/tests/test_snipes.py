import pytest

from snipegame import db
from snipegame.errors import (
    AlreadyResolved, InvalidMember, NotFound, NotMember, NotTarget, TransactionConflict, WindowExpired,
    WindowStillOpen,
)
from snipegame.models import User, Group, Snipe, PointEntry
from snipegame.services import powerups, snipes


@pytest.fixture()
def trio(make_user, make_group):
    alice = make_user('alice')
    bob = make_user('bob')
    cara = make_user('cara')
    group = make_group(alice, bob, cara)
    return alice, bob, cara, group


def _activate(user, powerup_type, uses=1):
    powerups.activate(user, powerup_type, uses=uses)
    db.session.commit()


def test_create_snipe_is_pending_with_base_points(trio, clock):
    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id, photo_ref='photos/1.jpg')
    assert snipe.status == 'pending'
    assert snipe.points == 1
    assert snipe.timestamp == clock.current
    assert snipe.photo_ref == 'photos/1.jpg'
    assert snipe.powerups == {'double_points': False, 'shield': False, 'half_points': False}
    # Nothing is paid out until the snipe resolves
    assert db.session.get(User, alice.id).points == 0


def test_create_snipe_validates_members(trio, make_user):
    alice, bob, _, group = trio
    outsider = make_user('dave')
    with pytest.raises(InvalidMember):
        snipes.create_snipe(alice.id, alice.id, group.id)
    with pytest.raises(NotMember):
        snipes.create_snipe(alice.id, outsider.id, group.id)
    with pytest.raises(NotFound):
        snipes.create_snipe(alice.id, bob.id, 'missing-group')
    assert Snipe.query.count() == 0


def test_double_points_doubles_and_spends_one_use(trio):
    alice, bob, _, group = trio
    _activate(alice, powerups.DOUBLE_POINTS, uses=2)

    snipe = snipes.create_snipe(alice.id, bob.id, group.id)

    assert snipe.points == 2
    assert snipe.powerups['double_points'] is True
    entry = db.session.get(User, alice.id).find_powerup(powerups.DOUBLE_POINTS)
    assert entry['remaining_uses'] == 1


def test_double_points_entry_removed_when_exhausted(trio):
    alice, bob, cara, group = trio
    _activate(alice, powerups.DOUBLE_POINTS, uses=2)
    snipes.create_snipe(alice.id, bob.id, group.id)
    second = snipes.create_snipe(alice.id, cara.id, group.id)
    third = snipes.create_snipe(alice.id, cara.id, group.id)
    assert second.points == 2
    assert third.points == 1
    assert db.session.get(User, alice.id).find_powerup(powerups.DOUBLE_POINTS) is None


def test_half_points_rounds_down(trio):
    alice, bob, _, group = trio
    _activate(bob, powerups.HALF_POINTS)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    assert snipe.points == 0
    assert snipe.powerups['half_points'] is True
    assert db.session.get(User, bob.id).find_powerup(powerups.HALF_POINTS) is None


def test_double_and_half_cancel_out(trio):
    alice, bob, _, group = trio
    _activate(alice, powerups.DOUBLE_POINTS)
    _activate(bob, powerups.HALF_POINTS)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    assert snipe.points == 1
    assert snipe.powerups == {'double_points': True, 'shield': False, 'half_points': True}


def test_shield_negates_modifiers_without_consuming_them(trio):
    alice, bob, _, group = trio
    _activate(alice, powerups.DOUBLE_POINTS)
    _activate(bob, powerups.SHIELD)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    assert snipe.points == 1
    assert snipe.powerups['shield'] is True
    assert snipe.powerups['double_points'] is False
    assert db.session.get(User, alice.id).find_powerup(powerups.DOUBLE_POINTS) is not None
    assert db.session.get(User, bob.id).find_powerup(powerups.SHIELD) is not None


def test_dodge_inside_window_awards_target(trio, clock):
    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(19_000)

    dodged = snipes.dodge_snipe(snipe.id, bob.id)

    assert dodged.status == 'dodged'
    assert dodged.resolved_at == clock.current
    bob_row = db.session.get(User, bob.id)
    assert bob_row.points == 5
    cached = {m['id']: m['points'] for m in db.session.get(Group, group.id).members}
    assert cached[bob.id] == 5


def test_dodge_exactly_at_window_edge_succeeds(trio, clock):
    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(20_000)
    assert snipes.dodge_snipe(snipe.id, bob.id).status == 'dodged'


def test_dodge_after_window_fails(trio, clock):
    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(20_001)
    with pytest.raises(WindowExpired):
        snipes.dodge_snipe(snipe.id, bob.id)
    assert db.session.get(Snipe, snipe.id).status == 'pending'
    assert db.session.get(User, bob.id).points == 0


def test_shield_dodge_succeeds_late_and_removes_shield(trio, clock):
    alice, bob, _, group = trio
    _activate(bob, powerups.SHIELD)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(25_000)

    dodged = snipes.dodge_snipe(snipe.id, bob.id)

    assert dodged.status == 'dodged'
    bob_row = db.session.get(User, bob.id)
    assert bob_row.points == 10
    assert bob_row.find_powerup(powerups.SHIELD) is None


def test_only_target_may_dodge(trio):
    alice, bob, cara, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    with pytest.raises(NotTarget):
        snipes.dodge_snipe(snipe.id, cara.id)


def test_resolve_pays_sniper_after_window(trio, clock):
    alice, bob, _, group = trio
    _activate(alice, powerups.DOUBLE_POINTS)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)

    with pytest.raises(WindowStillOpen):
        snipes.resolve_expired_snipe(snipe.id)

    clock.advance(20_001)
    completed = snipes.resolve_expired_snipe(snipe.id)

    assert completed.status == 'completed'
    alice_row = db.session.get(User, alice.id)
    assert alice_row.points == 2
    assert db.session.get(User, bob.id).points == 0
    entry = PointEntry.query.filter_by(user_id=alice.id).one()
    assert (entry.delta, entry.reason, entry.ref_id) == (2, 'snipe', snipe.id)
    cached = {m['id']: m['points'] for m in db.session.get(Group, group.id).members}
    assert cached[alice.id] == 2


def test_dodge_then_resolve_is_a_noop(trio, clock):
    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(10_000)
    snipes.dodge_snipe(snipe.id, bob.id)
    clock.advance(30_000)

    with pytest.raises(AlreadyResolved):
        snipes.resolve_expired_snipe(snipe.id)

    assert db.session.get(Snipe, snipe.id).status == 'dodged'
    assert db.session.get(User, alice.id).points == 0
    assert db.session.get(User, bob.id).points == 5


def test_resolve_then_dodge_is_a_noop(trio, clock):
    alice, bob, _, group = trio
    _activate(bob, powerups.SHIELD)
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(20_001)
    snipes.resolve_expired_snipe(snipe.id)

    # Even a shield cannot undo a completed snipe
    with pytest.raises(AlreadyResolved):
        snipes.dodge_snipe(snipe.id, bob.id)

    bob_row = db.session.get(User, bob.id)
    assert bob_row.points == 0
    assert bob_row.find_powerup(powerups.SHIELD) is not None
    assert db.session.get(User, alice.id).points == 1


def test_sweep_resolves_only_expired(trio, clock):
    alice, bob, cara, group = trio
    old = snipes.create_snipe(alice.id, bob.id, group.id)
    clock.advance(15_000)
    fresh = snipes.create_snipe(alice.id, cara.id, group.id)
    clock.advance(6_000)

    resolved = snipes.sweep_expired_snipes()

    assert [s.id for s in resolved] == [old.id]
    assert db.session.get(Snipe, fresh.id).status == 'pending'
    assert [s.id for s in snipes.get_pending_snipes_for_target(cara.id)] == [fresh.id]
    assert snipes.get_pending_snipes_for_target(bob.id) == []


def test_scheduler_resolves_when_enabled(trio, clock, flask_app):
    from snipegame.services.scheduler import schedule_snipe_expiry

    alice, bob, _, group = trio
    snipe = snipes.create_snipe(alice.id, bob.id, group.id)

    # Disabled under TESTING by default
    schedule_snipe_expiry(flask_app, snipe.id)
    assert db.session.get(Snipe, snipe.id).status == 'pending'

    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    clock.advance(20_001)
    schedule_snipe_expiry(flask_app, snipe.id)

    db.session.expire_all()
    assert db.session.get(Snipe, snipe.id).status == 'completed'
    assert db.session.get(User, alice.id).points == 1


def test_scheduler_skips_dodged_snipe(trio, clock, flask_app):
    from snipegame.services.scheduler import schedule_pending_snipes

    alice, bob, cara, group = trio
    dodged = snipes.create_snipe(alice.id, bob.id, group.id)
    pending = snipes.create_snipe(alice.id, cara.id, group.id)
    snipes.dodge_snipe(dodged.id, bob.id)

    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    clock.advance(20_001)
    assert schedule_pending_snipes(flask_app) == 1

    db.session.expire_all()
    assert db.session.get(Snipe, pending.id).status == 'completed'
    assert db.session.get(Snipe, dodged.id).status == 'dodged'


def test_sweep_continues_past_contended_snipe(trio, clock, monkeypatch):
    alice, bob, cara, group = trio
    contended = snipes.create_snipe(alice.id, bob.id, group.id)
    other = snipes.create_snipe(alice.id, cara.id, group.id)
    clock.advance(20_001)
    real_resolve = snipes.resolve_expired_snipe

    def resolve(snipe_id):
        if snipe_id == contended.id:
            raise TransactionConflict(f"resolve snipe={snipe_id} could not commit")
        return real_resolve(snipe_id)

    monkeypatch.setattr(snipes, 'resolve_expired_snipe', resolve)
    resolved = snipes.sweep_expired_snipes()

    assert [s.id for s in resolved] == [other.id]
    assert db.session.get(Snipe, contended.id).status == 'pending'
    assert db.session.get(Snipe, other.id).status == 'completed'
