from snipegame import db
from uuid import uuid4
import string
import random

from snipegame import timeutils

DEFAULT_LOGO_ID = 'default'

SNIPE_PENDING = 'pending'
SNIPE_DODGED = 'dodged'
SNIPE_COMPLETED = 'completed'


def generate_id():
    return uuid4().hex


def now_ms():
    return timeutils.now_ms()


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    points = db.Column(db.Integer, nullable=False, default=0)
    # [{item_id, purchased_at, used}] - append-only
    inventory = db.Column(db.JSON, nullable=False, default=list)
    # [{id, type, remaining_uses, activated_at, item_id}]
    active_powerups = db.Column(db.JSON, nullable=False, default=list)
    active_logo_id = db.Column(db.String(64), nullable=False, default=DEFAULT_LOGO_ID)
    group_ids = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def find_powerup(self, powerup_type):
        for entry in self.active_powerups or []:
            if entry.get('type') == powerup_type:
                return entry
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'points': self.points,
            'inventory': list(self.inventory or []),
            'active_powerups': list(self.active_powerups or []),
            'active_logo_id': self.active_logo_id,
            'group_ids': list(self.group_ids or []),
        }


def generate_invite_code(length=6):
    """Generate a unique, short invite code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Group.query.filter_by(invite_code=code).first():
            return code


class Group(db.Model):
    __tablename__ = 'groups'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    name = db.Column(db.String(64), nullable=False)
    created_by = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=True)
    invite_code = db.Column(db.String(16), unique=True, index=True, nullable=False)
    # [{id, name, points}] - cache of User.points, not authoritative
    members = db.Column(db.JSON, nullable=False, default=list)
    # {accuser_id, accused_id, votes: {user_id: bool}, timestamp} or None
    active_accusation = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, invite_code_length=6, **kwargs):
        super(Group, self).__init__(**kwargs)
        if not self.invite_code:
            self.invite_code = generate_invite_code(invite_code_length)

    def member_ids(self):
        return [m['id'] for m in self.members or []]

    def has_member(self, user_id):
        return user_id in self.member_ids()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'created_by': self.created_by,
            'invite_code': self.invite_code,
            'members': list(self.members or []),
            'active_accusation': self.active_accusation,
        }


class Snipe(db.Model):
    __tablename__ = 'snipes'
    id = db.Column(db.String(32), primary_key=True, default=generate_id)
    sniper_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False, index=True)
    target_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False, index=True)
    group_id = db.Column(db.String(32), db.ForeignKey('groups.id'), nullable=False, index=True)
    # Server clock, epoch milliseconds
    timestamp = db.Column(db.BigInteger, nullable=False, default=now_ms)
    status = db.Column(db.String(16), nullable=False, default=SNIPE_PENDING, index=True)  # pending, dodged, completed
    points = db.Column(db.Integer, nullable=False, default=0)
    # {double_points, shield, half_points} captured at creation
    powerups = db.Column(db.JSON, nullable=False, default=dict)
    photo_ref = db.Column(db.String(512), nullable=True)
    resolved_at = db.Column(db.BigInteger, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_pending(self):
        return self.status == SNIPE_PENDING

    def to_dict(self):
        return {
            'id': self.id,
            'sniper_id': self.sniper_id,
            'target_id': self.target_id,
            'group_id': self.group_id,
            'timestamp': self.timestamp,
            'status': self.status,
            'points': self.points,
            'powerups': dict(self.powerups or {}),
            'photo_ref': self.photo_ref,
            'resolved_at': self.resolved_at,
        }


class PointEntry(db.Model):
    __tablename__ = 'point_entries'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=False, index=True)
    delta = db.Column(db.Integer, nullable=False)
    balance = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)  # snipe, dodge, accusation, purchase
    ref_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.BigInteger, nullable=False, default=now_ms)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'delta': self.delta,
            'balance': self.balance,
            'reason': self.reason,
            'ref_id': self.ref_id,
            'created_at': self.created_at,
        }
