"""
Room catalog.

WHAT: Display config and ordered product list per room
WHY: Rounds negotiate the product at index (round - 1) modulo the list length
HOW: Built-in default catalog, optionally replaced by a JSON file from settings
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .config import settings
from ..models.negotiation import Product
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RoomTemplate(BaseModel):
    """Read-only room definition from the catalog."""
    id: str
    name: str
    description: str = ""
    products: list[Product] = Field(default_factory=list)


DEFAULT_ROOMS = [
    RoomTemplate(
        id="electronics",
        name="Electronics",
        description="Smartphones, Laptops, Gaming Devices",
        products=[
            Product(name="iPhone 14 Pro", seller_info="Brand new, unopened box", buyer_info="Great camera, latest features"),
            Product(name="MacBook Air M2", seller_info="Perfect for students", buyer_info="Lightweight and powerful"),
            Product(name="PlayStation 5", seller_info="Gaming console in high demand", buyer_info="Latest games available"),
        ],
    ),
    RoomTemplate(
        id="furniture",
        name="Furniture",
        description="Sofas, Desks, Dining Sets",
        products=[
            Product(name="Leather Sofa", seller_info="Barely used, no scratches", buyer_info="Needs to fit a small apartment"),
            Product(name="Standing Desk", seller_info="Electric height adjustment", buyer_info="Home office upgrade"),
            Product(name="Oak Dining Table", seller_info="Seats six, solid wood", buyer_info="Moving into a family home"),
        ],
    ),
    RoomTemplate(
        id="vehicles",
        name="Vehicles",
        description="Bikes, Scooters, Used Cars",
        products=[
            Product(name="Road Bike", seller_info="Carbon frame, serviced last month", buyer_info="Daily commute"),
            Product(name="Electric Scooter", seller_info="Battery replaced recently", buyer_info="Short trips around campus"),
            Product(name="2015 Honda Civic", seller_info="One owner, full service history", buyer_info="First car on a budget"),
        ],
    ),
]


class RoomCatalog:
    """Lookup of room templates by id; unknown ids get an empty template."""

    def __init__(self, rooms: list[RoomTemplate]):
        self._rooms = {room.id: room for room in rooms}

    @classmethod
    def from_file(cls, path: str) -> "RoomCatalog":
        """
        Load a catalog JSON file.

        Format: [{"id": ..., "name": ..., "description": ..., "products": [{"name", "seller_info", "buyer_info"}]}]
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls([RoomTemplate.model_validate(entry) for entry in data])

    @classmethod
    def from_settings(cls) -> "RoomCatalog":
        if settings.ROOM_CATALOG_PATH:
            catalog = cls.from_file(settings.ROOM_CATALOG_PATH)
            logger.info(f"Loaded {len(catalog)} rooms from {settings.ROOM_CATALOG_PATH}")
            return catalog
        return cls(DEFAULT_ROOMS)

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Optional[RoomTemplate]:
        return self._rooms.get(room_id)

    def template_for(self, room_id: str) -> RoomTemplate:
        """Catalog entry, or a bare template named after the id."""
        return self._rooms.get(room_id) or RoomTemplate(id=room_id, name=room_id)

    def list_rooms(self) -> list[RoomTemplate]:
        return list(self._rooms.values())
