"""
Seed a demo restaurant with tables, menu, staff, inventory and recipes.

Prints one bearer token per staff member plus an admin token so the
dashboards and the API can be exercised right away. Safe to re-run against a
fresh database only: ids are random, nothing is matched or updated.

Usage:
    python -m scripts.seed_demo [--tables 8] [--networks 192.168.1.0/24]

Environment:
    APP_DATABASE_URL: Database connection (default: sqlite:///./qrorder.db)
    JWT_SECRET_KEY: Secret used to sign the printed tokens
"""

import argparse
import asyncio
import logging
from datetime import timedelta
from decimal import Decimal
from typing import List
from uuid import uuid4

from passlib.context import CryptContext

from qrorder.api.dependencies import create_access_token
from qrorder.config import get_settings
from qrorder.domain import (
    InventoryItem,
    MenuItem,
    RecipeItem,
    Restaurant,
    Staff,
    StaffRole,
    Table,
)
from qrorder.storage import SQLAlchemyStorage

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DEMO_MENU = [
    # name, name_fr, name_ar, price_cents
    ("Mint Tea", "Thé à la menthe", "شاي بالنعناع", 250),
    ("Espresso", "Expresso", "إسبريسو", 300),
    ("Orange Juice", "Jus d'orange", "عصير برتقال", 450),
    ("Chicken Tagine", "Tajine de poulet", "طاجين دجاج", 1450),
    ("Couscous Royal", "Couscous royal", "كسكس ملكي", 1800),
]

DEMO_STAFF = [
    ("Amina", StaffRole.WAITER, "1111"),
    ("Youssef", StaffRole.WAITER, "2222"),
    ("Karim", StaffRole.KITCHEN, "3333"),
    ("Leila", StaffRole.MANAGER, "4444"),
]


async def seed(database_url: str, table_count: int, networks: List[str], timezone: str) -> None:
    settings = get_settings()
    storage = SQLAlchemyStorage(database_url, use_alembic=settings.use_alembic)
    try:
        restaurant = await storage.add_restaurant(Restaurant(
            id=str(uuid4()),
            name="Demo Café",
            name_fr="Café Démo",
            name_ar="مقهى تجريبي",
            timezone=timezone,
            allowed_networks=networks,
        ))
        logger.info(f"Created restaurant {restaurant.name} ({restaurant.id})")

        for number in range(1, table_count + 1):
            await storage.add_table(Table(
                id=str(uuid4()),
                restaurant_id=restaurant.id,
                table_number=number,
                table_name=f"Table {number}",
            ))
        logger.info(f"Created {table_count} tables")

        menu = {}
        for name, name_fr, name_ar, price_cents in DEMO_MENU:
            item = await storage.add_menu_item(MenuItem(
                id=str(uuid4()),
                restaurant_id=restaurant.id,
                name=name,
                name_fr=name_fr,
                name_ar=name_ar,
                price_cents=price_cents,
            ))
            menu[name] = item
        logger.info(f"Created {len(menu)} menu items")

        tea = await storage.add_inventory_item(InventoryItem(
            id=str(uuid4()), restaurant_id=restaurant.id, name="Green tea", unit="g",
            current_stock=Decimal("2000"),
        ))
        mint = await storage.add_inventory_item(InventoryItem(
            id=str(uuid4()), restaurant_id=restaurant.id, name="Fresh mint", unit="g",
            current_stock=Decimal("1500"),
        ))
        await storage.add_recipe_item(RecipeItem(menu["Mint Tea"].id, tea.id, Decimal("5")))
        await storage.add_recipe_item(RecipeItem(menu["Mint Tea"].id, mint.id, Decimal("8")))
        logger.info("Created inventory and recipes for Mint Tea")

        expires = timedelta(minutes=settings.access_token_expire_minutes)
        print("\nBearer tokens:")
        print(f"  admin: {create_access_token({'restaurant_id': restaurant.id}, settings.jwt_secret_key, expires)}")
        for name, role, pin in DEMO_STAFF:
            staff = await storage.add_staff(Staff(
                id=str(uuid4()),
                restaurant_id=restaurant.id,
                name=name,
                role=role,
                pin_hash=pwd_context.hash(pin),
            ))
            token = create_access_token(
                {"restaurant_id": restaurant.id, "staff_id": staff.id, "role": role.value},
                settings.jwt_secret_key,
                expires,
            )
            print(f"  {name} ({role.value}): {token}")
    finally:
        await storage.close()


def main():
    """Main entry point."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Seed a demo restaurant")
    parser.add_argument("--database-url", default=settings.database_url, help="SQLAlchemy URL")
    parser.add_argument("--tables", type=int, default=8, help="Number of tables to create")
    parser.add_argument(
        "--networks", nargs="*", default=[],
        help="CIDR ranges customers must order from (default: no gating)",
    )
    parser.add_argument("--timezone", default=settings.default_timezone, help="IANA timezone name")
    args = parser.parse_args()

    asyncio.run(seed(args.database_url, args.tables, args.networks, args.timezone))


if __name__ == '__main__':
    main()
