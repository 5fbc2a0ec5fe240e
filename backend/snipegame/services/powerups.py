"""Power-up engine.

Active power-ups live on the user record as ``{id, type, remaining_uses,
activated_at, item_id}`` entries. The helpers here mutate a ``User`` loaded in
the caller's transaction; they never commit on their own, so a snipe can
consume the sniper's and the target's power-ups atomically with its insert.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
import math

from snipegame import timeutils
from snipegame.errors import InvalidRequest, PowerupAlreadyActive
from snipegame.models import User, generate_id
from .ledger import load_user

DOUBLE_POINTS = 'double_points'
SHIELD = 'shield'
HALF_POINTS = 'half_points'
POWERUP_TYPES = (DOUBLE_POINTS, SHIELD, HALF_POINTS)

# Types whose repeated activation adds uses instead of failing
STACKABLE_TYPES = {SHIELD}


def has_powerup(user: User, powerup_type: str) -> bool:
    return user.find_powerup(powerup_type) is not None


def activate(user: User, powerup_type: str, uses: int = 1, item_id: Optional[str] = None) -> Dict:
    """Activate a power-up on ``user``.

    At most one entry per type. A second shield adds its uses to the
    existing entry; any other duplicate raises ``PowerupAlreadyActive``.
    """
    if powerup_type not in POWERUP_TYPES:
        raise InvalidRequest(f"Unknown power-up type {powerup_type}")
    if uses < 1:
        raise InvalidRequest("A power-up needs at least one use")

    powerups = [dict(p) for p in user.active_powerups or []]
    for entry in powerups:
        if entry.get('type') != powerup_type:
            continue
        if powerup_type in STACKABLE_TYPES:
            entry['remaining_uses'] = int(entry.get('remaining_uses', 0)) + uses
            user.active_powerups = powerups
            return entry
        raise PowerupAlreadyActive(f"{powerup_type} is already active")

    entry = {
        'id': generate_id(),
        'type': powerup_type,
        'remaining_uses': uses,
        'activated_at': timeutils.now_ms(),
        'item_id': item_id,
    }
    powerups.append(entry)
    user.active_powerups = powerups
    return entry


def consume(user: User, powerup_type: str) -> bool:
    """Take one use of ``powerup_type``; drop the entry when it runs out.

    Returns False when the user holds no such power-up.
    """
    powerups = [dict(p) for p in user.active_powerups or []]
    for idx, entry in enumerate(powerups):
        if entry.get('type') != powerup_type:
            continue
        entry['remaining_uses'] = int(entry.get('remaining_uses', 0)) - 1
        if entry['remaining_uses'] <= 0:
            del powerups[idx]
        user.active_powerups = powerups
        return True
    return False


@dataclass
class SnipeOutcome:
    points: int
    double_points: bool = False
    shield: bool = False
    half_points: bool = False

    def snapshot(self) -> Dict[str, bool]:
        return {
            DOUBLE_POINTS: self.double_points,
            SHIELD: self.shield,
            HALF_POINTS: self.half_points,
        }


def resolve_snipe_points(sniper: User, target: User, base_points: int) -> SnipeOutcome:
    """Compute a snipe's value at creation time and consume the modifiers used.

    The target's shield is checked first: a shielded target negates both the
    sniper's double_points and its own half_points, and neither is consumed, so
    they survive for later snipes. The shield itself is only spent on dodge.
    Fractional values round down.
    """
    if has_powerup(target, SHIELD):
        return SnipeOutcome(points=base_points, shield=True)

    multiplier = 1.0
    doubled = consume(sniper, DOUBLE_POINTS)
    if doubled:
        multiplier *= 2
    halved = consume(target, HALF_POINTS)
    if halved:
        multiplier *= 0.5
    return SnipeOutcome(
        points=int(math.floor(base_points * multiplier)),
        double_points=doubled,
        half_points=halved,
    )


def get_active_powerups(user_id: str) -> List[Dict]:
    user = load_user(user_id)
    return list(user.active_powerups or [])
