"""Seed the top-level categories. Run with ``python seed.py``."""
import logging

from database import connect
from repositories import Store
from settings import load_settings

logger = logging.getLogger(__name__)

CATEGORIES = [
    {"name": "Men's Clothing", "image": ""},
    {"name": "Watches", "image": ""},
    {"name": "Shoes", "image": ""},
    {"name": "Vapes & Pods", "image": ""},
    {"name": "Care", "image": ""},
]


def seed_categories(store: Store) -> int:
    created = 0
    for category in CATEGORIES:
        if store.categories.find_one({"name": category["name"]}):
            continue
        store.categories.create(dict(category, parent_category=None, subcategories=[]))
        created += 1
    logger.info("Seeded %d categories", created)
    return created


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_categories(Store(connect(load_settings())))
