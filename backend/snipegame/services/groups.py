from typing import List, Optional

from flask import current_app

from snipegame import db, group_sync, timeutils
from snipegame.errors import AccusationInProgress, AlreadyMember, InvalidRequest, NotFound, NotMember
from snipegame.models import User, Group, generate_id
from .accusations import settle_if_complete
from .ledger import run_transaction, load_user, load_group
from .notifications import publish_change


def create_user(name: str, email: Optional[str] = None) -> User:
    """Sign a player up with an empty balance and inventory."""
    name = (name or '').strip()
    if not name:
        raise InvalidRequest('Name is required')
    user = User(
        id=generate_id(),
        name=name,
        email=email,
        points=0,
        inventory=[],
        active_powerups=[],
        group_ids=[],
        created_at=timeutils.now_ms(),
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[signup] user={user.id} name={name}")
    return user


def get_user(user_id: str) -> User:
    return load_user(user_id)


def create_group(name: str, user_id: str) -> Group:
    """Create a group with a fresh invite code; the creator is its first member."""
    name = (name or '').strip()
    if not name:
        raise InvalidRequest('Group name is required')
    code_length = int(current_app.config.get('INVITE_CODE_LENGTH', 6))

    def work():
        user = load_user(user_id)
        group = Group(
            id=generate_id(),
            name=name,
            created_by=user.id,
            invite_code_length=code_length,
            members=[{'id': user.id, 'name': user.name, 'points': user.points}],
            created_at=timeutils.now_ms(),
        )
        user.group_ids = list(user.group_ids or []) + [group.id]
        db.session.add_all([group, user])
        return group

    group = run_transaction(work, label=f"create-group user={user_id}")
    current_app.logger.info(f"[group-create] group={group.id} code={group.invite_code} by={user_id}")
    publish_change('users', user_id)
    return group


def join_group(invite_code: str, user_id: str) -> Group:
    """Redeem an invite code. Both sides of the membership commit together."""
    code = (invite_code or '').strip().upper()
    if not code:
        raise InvalidRequest('Invite code is required')

    def work():
        group = Group.query.filter_by(invite_code=code).first()
        if not group:
            raise NotFound('Invalid invite code')
        user = load_user(user_id)
        if group.has_member(user.id):
            raise AlreadyMember(f"User {user_id} is already in group {group.id}")
        group.members = list(group.members or []) + [{'id': user.id, 'name': user.name, 'points': user.points}]
        if group.id not in (user.group_ids or []):
            user.group_ids = list(user.group_ids or []) + [group.id]
        db.session.add_all([group, user])
        return group

    group = run_transaction(work, label=f"join code={code} user={user_id}")
    current_app.logger.info(f"[group-join] group={group.id} user={user_id}")
    publish_change('groups', group.id, {'member_joined': user_id})
    publish_change('users', user_id)
    return group


def leave_group(group_id: str, user_id: str) -> Group:
    """Remove a member from a group.

    The accuser and the accused cannot leave while their accusation is open.
    A departing voter's ballot is dropped and the tally re-checked, since the
    remaining members may now all have voted.
    """
    def work():
        group = load_group(group_id)
        user = load_user(user_id)
        if not group.has_member(user_id):
            raise NotMember(f"User {user_id} is not a member of group {group_id}")
        accusation = group.active_accusation
        if accusation and user_id in (accusation['accuser_id'], accusation['accused_id']):
            raise AccusationInProgress('Parties to an open accusation cannot leave the group')

        group.members = [m for m in group.members or [] if m.get('id') != user_id]
        user.group_ids = [gid for gid in user.group_ids or [] if gid != group_id]
        verdict = None
        if accusation:
            votes = {k: v for k, v in (accusation.get('votes') or {}).items() if k != user_id}
            group.active_accusation = dict(accusation, votes=votes)
            verdict = settle_if_complete(group)
        db.session.add_all([group, user])
        return group, verdict

    group, verdict = run_transaction(work, label=f"leave group={group_id} user={user_id}")
    current_app.logger.info(f"[group-leave] group={group_id} user={user_id}")
    if verdict and verdict['penalized']:
        group_sync.notify([verdict['accused_id']])
    publish_change('groups', group_id, {'member_left': user_id})
    publish_change('users', user_id)
    return group


def get_group(group_id: str) -> Group:
    return load_group(group_id)


def get_user_groups(user_id: str) -> List[Group]:
    user = load_user(user_id)
    group_ids = list(user.group_ids or [])
    if not group_ids:
        return []
    found = {g.id: g for g in Group.query.filter(Group.id.in_(group_ids)).all()}
    return [found[gid] for gid in group_ids if gid in found]
