from typing import Any, Dict

from flask import current_app

from snipegame import group_sync, timeutils
from snipegame.catalog import Catalog
from snipegame.errors import AlreadyInUse, AlreadyOwned, InsufficientFunds, NotFound, NotUsable
from snipegame.models import User, DEFAULT_LOGO_ID
from . import powerups
from .ledger import run_transaction, load_user, apply_points
from .notifications import publish_change


def purchase_item(user_id: str, item_id: str, catalog: Catalog) -> User:
    """Debit the item's price and append it to the user's inventory.

    Logos can be owned once and become active immediately. A power-up cannot be
    bought while an unused copy sits in the inventory. Crosshairs are
    unrestricted.
    """
    item = catalog.get_item(item_id)

    def work():
        user = load_user(user_id)
        inventory = [dict(entry) for entry in user.inventory or []]
        if item.type == 'logo' and any(e.get('item_id') == item.id for e in inventory):
            raise AlreadyOwned(f"{item.id} is already owned")
        if item.type == 'powerup' and any(e.get('item_id') == item.id and not e.get('used') for e in inventory):
            raise AlreadyInUse(f"An unused {item.id} is already in the inventory")
        if int(user.points or 0) < item.price:
            raise InsufficientFunds(f"{item.id} costs {item.price}, balance is {user.points}")

        inventory.append({'item_id': item.id, 'purchased_at': timeutils.now_ms(), 'used': False})
        user.inventory = inventory
        if item.type == 'logo':
            user.active_logo_id = item.id
        apply_points(user, -item.price, 'purchase', ref_id=item.id)
        return user

    user = run_transaction(work, label=f"purchase user={user_id} item={item_id}")
    current_app.logger.info(f"[purchase] user={user_id} item={item.id} price={item.price} balance={user.points}")
    group_sync.notify([user_id])
    publish_change('users', user_id, {'points': user.points})
    return user


def use_item(user_id: str, item_id: str, catalog: Catalog) -> User:
    """Use an unused inventory entry.

    Logos become the active logo and stay reusable. Power-ups are activated
    first and only then marked used, so a failed activation leaves the entry
    untouched and the error reaches the caller.
    """
    item = catalog.get_item(item_id)

    def work():
        user = load_user(user_id)
        inventory = [dict(entry) for entry in user.inventory or []]
        index = next(
            (i for i, e in enumerate(inventory) if e.get('item_id') == item.id and not e.get('used')),
            None,
        )
        if index is None:
            raise NotFound(f"No unused {item.id} in inventory")

        if item.type == 'logo':
            user.active_logo_id = item.id
        elif item.type == 'powerup':
            powerups.activate(user, item.effect, uses=item.duration, item_id=item.id)
            inventory[index]['used'] = True
            user.inventory = inventory
        else:
            raise NotUsable(f"{item.type} items have no use action")
        return user

    user = run_transaction(work, label=f"use user={user_id} item={item_id}")
    current_app.logger.info(f"[use-item] user={user_id} item={item.id} type={item.type}")
    publish_change('users', user_id)
    return user


def reset_logo(user_id: str) -> User:
    def work():
        user = load_user(user_id)
        user.active_logo_id = DEFAULT_LOGO_ID
        return user

    user = run_transaction(work, label=f"reset-logo user={user_id}")
    publish_change('users', user_id)
    return user


def get_user_inventory(user_id: str) -> Dict[str, Any]:
    user = load_user(user_id)
    return {
        'points': user.points,
        'items': list(user.inventory or []),
        'active_logo_id': user.active_logo_id,
    }
