"""
Shop menu and item categories
"""

from dataclasses import dataclass
from typing import List, Optional

DRINK_CATEGORIES = frozenset({"Coffee", "Drinks"})
PASTRY_CATEGORY = "Pastry"
UNKNOWN_CATEGORY = "Other"


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: float
    category: str


MENU: List[MenuItem] = [
    MenuItem("Espresso", 3.50, "Coffee"),
    MenuItem("Latte", 4.75, "Coffee"),
    MenuItem("Cappuccino", 4.50, "Coffee"),
    MenuItem("Americano", 3.25, "Coffee"),
    MenuItem("Mocha", 5.00, "Coffee"),
    MenuItem("Croissant", 3.00, "Pastry"),
    MenuItem("Muffin", 3.50, "Pastry"),
    MenuItem("Chocolate Cake Slice", 4.50, "Cake/Bread"),
    MenuItem("Banana Bread", 3.00, "Cake/Bread"),
    MenuItem("Canned Soda", 2.00, "Drinks"),
    MenuItem("Mango Smoothie", 4.50, "Drinks"),
    MenuItem("Bottled Water", 1.50, "Drinks"),
    MenuItem("Chicken Pesto Pasta", 10.00, "Food"),
    MenuItem("Beef Lasagna", 12.00, "Food"),
]


def find_item(name: str) -> Optional[MenuItem]:
    """Case-insensitive lookup of a menu item by name"""
    wanted = name.strip().lower()
    for item in MENU:
        if item.name.lower() == wanted:
            return item
    return None


def category_for(name: str) -> str:
    """Category of a menu item, or 'Other' for items not on the menu"""
    item = find_item(name)
    return item.category if item else UNKNOWN_CATEGORY


def is_drink(category: str) -> bool:
    return category in DRINK_CATEGORIES
