"""Accusation protocol.

A group holds at most one accusation at a time. The accuser's "yes" is
recorded up front; every other member except the accused then votes, and
re-voting simply overwrites. Once every eligible member has voted the
accusation closes: a unanimous "yes" costs the accused ACCUSATION_PENALTY
points, anything else costs nothing. The slot is then free again.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import current_app

from snipegame import db, group_sync, timeutils
from snipegame.errors import AccusationInProgress, AccusedCannotVote, InvalidMember, NoActiveAccusation, NotMember
from snipegame.models import Group
from .ledger import run_transaction, load_group, load_user, apply_points
from .notifications import publish_change


@dataclass
class VoteResult:
    group: Group
    resolved: bool = False
    penalized: bool = False
    accused_id: Optional[str] = None


def settle_if_complete(group: Group) -> Optional[Dict[str, Any]]:
    """Close the group's accusation once all eligible members have voted.

    Runs inside the caller's transaction; the penalty and the cleared slot
    commit together with the vote that completed the tally.
    """
    accusation = group.active_accusation
    if not accusation:
        return None
    votes = accusation.get('votes') or {}
    eligible = len(group.members or []) - 1
    if len(votes) < eligible:
        return None

    guilty = all(bool(v) for v in votes.values())
    if guilty:
        penalty = int(current_app.config.get('ACCUSATION_PENALTY', 1))
        accused = load_user(accusation['accused_id'])
        apply_points(accused, -penalty, 'accusation', ref_id=group.id)
    group.active_accusation = None
    db.session.add(group)
    return {'accused_id': accusation['accused_id'], 'penalized': guilty, 'votes': votes}


def accuse_member(group_id: str, accuser_id: str, accused_id: str) -> Group:
    def work():
        group = load_group(group_id)
        if group.active_accusation:
            raise AccusationInProgress(f"Group {group_id} already has an active accusation")
        if accuser_id == accused_id:
            raise InvalidMember("A member cannot accuse themselves")
        if not (group.has_member(accuser_id) and group.has_member(accused_id)):
            raise InvalidMember("Invalid member IDs")
        group.active_accusation = {
            'accuser_id': accuser_id,
            'accused_id': accused_id,
            'votes': {accuser_id: True},
            'timestamp': timeutils.now_ms(),
        }
        db.session.add(group)
        return group

    group = run_transaction(work, label=f"accuse group={group_id}")
    current_app.logger.info(f"[accuse] group={group_id} accuser={accuser_id} accused={accused_id}")
    publish_change('groups', group_id, {'accusation': 'opened'})
    return group


def vote_on_accusation(group_id: str, voter_id: str, vote: bool) -> VoteResult:
    def work():
        group = load_group(group_id)
        accusation = group.active_accusation
        if not accusation:
            raise NoActiveAccusation(f"Group {group_id} has no active accusation")
        if voter_id == accusation['accused_id']:
            raise AccusedCannotVote("The accused member cannot vote")
        if not group.has_member(voter_id):
            raise NotMember(f"User {voter_id} is not a member of group {group_id}")

        votes = dict(accusation.get('votes') or {})
        votes[voter_id] = bool(vote)
        group.active_accusation = dict(accusation, votes=votes)
        db.session.add(group)
        return group, settle_if_complete(group)

    group, verdict = run_transaction(work, label=f"vote group={group_id} voter={voter_id}")
    if verdict is None:
        current_app.logger.info(f"[vote] group={group_id} voter={voter_id} vote={bool(vote)}")
        publish_change('groups', group_id)
        return VoteResult(group=group)

    current_app.logger.info(
        f"[accusation-closed] group={group_id} accused={verdict['accused_id']} penalized={verdict['penalized']}"
    )
    if verdict['penalized']:
        group_sync.notify([verdict['accused_id']])
    publish_change('groups', group_id, {'accusation': 'closed', 'penalized': verdict['penalized']})
    return VoteResult(group=group, resolved=True, penalized=verdict['penalized'], accused_id=verdict['accused_id'])
