from __future__ import annotations

import logging

from sqlmodel import Session, select

from .errors import MenuError
from .models import MenuItem

logger = logging.getLogger(__name__)

CUISINES = ["Indian", "South Indian", "Chinese", "Continental"]
COMMON_ALLERGENS = ["dairy", "nuts", "gluten", "eggs", "seafood", "soy"]

# Managed only by the review aggregator
_RATING_FIELDS = {"average_rating", "review_count"}
_EDITABLE_FIELDS = {
    "name", "description", "price", "category", "image", "is_veg", "cuisine", "spice_level",
    "allergens", "nutritional_info", "is_available", "ingredients", "preparation_time",
}

SAMPLE_MENU = [
    {
        "name": "Chicken Biryani",
        "description": "Aromatic basmati rice cooked with tender chicken pieces and traditional spices",
        "price": 120, "category": "Main Course", "is_veg": False, "cuisine": "Indian", "spice_level": 3,
        "allergens": ["dairy"],
        "nutritional_info": {"calories": 450, "protein": 25, "carbs": 60, "fat": 15},
        "ingredients": ["Chicken", "Basmati Rice", "Spices", "Yogurt", "Onions"],
        "preparation_time": 25,
    },
    {
        "name": "Paneer Butter Masala",
        "description": "Rich and creamy tomato-based curry with soft paneer cubes",
        "price": 100, "category": "Main Course", "is_veg": True, "cuisine": "Indian", "spice_level": 2,
        "allergens": ["dairy"],
        "nutritional_info": {"calories": 320, "protein": 18, "carbs": 15, "fat": 22},
        "ingredients": ["Paneer", "Tomatoes", "Cream", "Spices", "Onions"],
        "preparation_time": 20,
    },
    {
        "name": "Masala Dosa",
        "description": "Crispy rice crepe filled with spiced potato curry, served with chutney and sambar",
        "price": 60, "category": "Breakfast", "is_veg": True, "cuisine": "South Indian", "spice_level": 2,
        "allergens": [],
        "nutritional_info": {"calories": 250, "protein": 8, "carbs": 45, "fat": 6},
        "ingredients": ["Rice", "Lentils", "Potatoes", "Spices"],
        "preparation_time": 15,
    },
    {
        "name": "Chicken Tikka",
        "description": "Marinated chicken pieces grilled to perfection in a tandoor oven",
        "price": 150, "category": "Appetizer", "is_veg": False, "cuisine": "Indian", "spice_level": 3,
        "allergens": ["dairy"],
        "nutritional_info": {"calories": 180, "protein": 28, "carbs": 5, "fat": 6},
        "ingredients": ["Chicken", "Yogurt", "Spices", "Lemon"],
        "preparation_time": 20,
    },
    {
        "name": "Fresh Lime Soda",
        "description": "Refreshing lime soda with mint leaves and a hint of black salt",
        "price": 30, "category": "Beverages", "is_veg": True, "cuisine": "Indian", "spice_level": 0,
        "allergens": [],
        "nutritional_info": {"calories": 45, "protein": 0, "carbs": 12, "fat": 0},
        "ingredients": ["Lime", "Soda Water", "Mint", "Black Salt"],
        "preparation_time": 5,
    },
]


def _validate(fields: dict) -> None:
    if "name" in fields and not str(fields["name"]).strip():
        raise MenuError("Name is required")
    if "price" in fields and float(fields["price"]) < 0:
        raise MenuError("Price cannot be negative")
    if "spice_level" in fields and not 0 <= int(fields["spice_level"]) <= 5:
        raise MenuError("Spice level must be between 0 and 5")
    if "preparation_time" in fields and int(fields["preparation_time"]) < 0:
        raise MenuError("Preparation time cannot be negative")


def get_menu_item(session: Session, item_id: int) -> MenuItem:
    item = session.get(MenuItem, item_id)
    if not item:
        raise MenuError("Menu item not found")
    return item


def list_menu(
    session: Session,
    search: str | None = None,
    category: str | None = None,
    veg_only: bool = False,
    available_only: bool = False,
) -> list[MenuItem]:
    stmt = select(MenuItem).order_by(MenuItem.category, MenuItem.name)
    if category:
        stmt = stmt.where(MenuItem.category == category)
    if veg_only:
        stmt = stmt.where(MenuItem.is_veg == True)  # noqa: E712
    if available_only:
        stmt = stmt.where(MenuItem.is_available == True)  # noqa: E712
    items = session.exec(stmt).all()
    if search:
        needle = search.strip().lower()
        items = [
            i for i in items
            if needle in i.name.lower() or needle in i.description.lower() or needle in i.cuisine.lower()
        ]
    return list(items)


def categories(session: Session) -> list[str]:
    return sorted(set(session.exec(select(MenuItem.category)).all()))


def add_menu_item(session: Session, **fields) -> MenuItem:
    unknown = set(fields) - _EDITABLE_FIELDS
    if unknown:
        raise MenuError(f"Unknown fields: {', '.join(sorted(unknown))}")
    _validate(fields)
    item = MenuItem(**fields, average_rating=0.0, review_count=0)
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info("Menu item %s added", item.name)
    return item


def update_menu_item(session: Session, item_id: int, **changes) -> MenuItem:
    if _RATING_FIELDS & set(changes):
        raise MenuError("Ratings are computed from reviews")
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise MenuError(f"Unknown fields: {', '.join(sorted(unknown))}")
    _validate(changes)
    item = get_menu_item(session, item_id)
    for key, value in changes.items():
        setattr(item, key, value)
    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def toggle_availability(session: Session, item_id: int) -> MenuItem:
    item = get_menu_item(session, item_id)
    item.is_available = not item.is_available
    session.add(item)
    session.commit()
    session.refresh(item)
    logger.info("Menu item %s is now %s", item.name, "available" if item.is_available else "unavailable")
    return item


def delete_menu_item(session: Session, item_id: int) -> None:
    # Orders keep their own snapshot, so history survives the delete
    item = get_menu_item(session, item_id)
    session.delete(item)
    session.commit()
    logger.info("Menu item %s deleted", item_id)


def seed_sample_menu(session: Session) -> int:
    if session.exec(select(MenuItem)).first():
        return 0
    for raw in SAMPLE_MENU:
        session.add(MenuItem(**raw))
    session.commit()
    return len(SAMPLE_MENU)
