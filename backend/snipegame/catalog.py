"""Read-only catalog of purchasable items.

The catalog is built once in ``create_app`` and handed to the services as a
parameter; nothing in the engine mutates it.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import json

from snipegame.errors import NotFound

ITEM_TYPES = ('crosshair', 'powerup', 'logo')
POWERUP_EFFECTS = ('double_points', 'shield', 'half_points')


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price: int
    type: str
    effect: Optional[str] = None
    duration: int = 1
    description: str = ''

    def __post_init__(self):
        if self.type not in ITEM_TYPES:
            raise ValueError(f"Unknown item type {self.type!r} for {self.id}")
        if self.price <= 0:
            raise ValueError(f"Price of {self.id} must be positive")
        if self.type == 'powerup' and self.effect not in POWERUP_EFFECTS:
            raise ValueError(f"Power-up {self.id} needs an effect in {POWERUP_EFFECTS}")
        if self.duration < 1:
            raise ValueError(f"Duration of {self.id} must be at least 1")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'type': self.type,
            'effect': self.effect,
            'duration': self.duration,
            'description': self.description,
        }


DEFAULT_ITEMS = [
    CatalogItem('crosshair1', 'Precision Crosshair', 100, 'crosshair',
                description='A precise dot for accurate targeting'),
    CatalogItem('crosshair2', 'Pro Crosshair', 200, 'crosshair',
                description='Four-point professional crosshair'),
    CatalogItem('powerup_double', 'Double Points', 300, 'powerup', effect='double_points', duration=2,
                description='Earn double points for your next 2 snipes'),
    CatalogItem('powerup_shield', 'Shield', 250, 'powerup', effect='shield',
                description='Dodge the next snipe at any time for a bigger reward'),
    CatalogItem('powerup_half', 'Half Points', 150, 'powerup', effect='half_points',
                description='The next sniper to hit you earns half'),
    CatalogItem('logo_skull', 'Skull Logo', 30, 'logo'),
    CatalogItem('logo_flame', 'Flame Logo', 50, 'logo'),
]


class Catalog:
    def __init__(self, items: Iterable[CatalogItem]):
        self._items: Dict[str, CatalogItem] = {}
        for item in items:
            if item.id in self._items:
                raise ValueError(f"Duplicate catalog item {item.id}")
            self._items[item.id] = item

    @classmethod
    def default(cls) -> 'Catalog':
        return cls(DEFAULT_ITEMS)

    @classmethod
    def from_json_file(cls, path: str) -> 'Catalog':
        """Load a catalog from a JSON list of item objects."""
        with open(path, 'r', encoding='utf-8') as fh:
            raw = json.load(fh)
        return cls(CatalogItem(**entry) for entry in raw)

    def get_item(self, item_id: str) -> CatalogItem:
        item = self._items.get(item_id)
        if item is None:
            raise NotFound(f"Item {item_id} not found")
        return item

    def items(self) -> List[CatalogItem]:
        return list(self._items.values())

    def __contains__(self, item_id) -> bool:
        return item_id in self._items
