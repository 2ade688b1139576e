import asyncio
import os
import sys

# Add project root to python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from src.api.discount_rules.service import DiscountRuleService
from src.database.connection import engine
from src.shared.error_handler import ServiceError

SAMPLE_RULES = [
    {
        "name": "Bundle of three",
        "description": "10% off when you buy 3 to 5 jerseys",
        "type": "quantity_based",
        "minQuantity": 3,
        "maxQuantity": 5,
        "discountPercentage": 10,
        "priority": 3,
    },
    {
        "name": "Buy 2 get 1 free",
        "description": "Every third retro jersey is on us",
        "type": "buy_x_get_y",
        "buyQuantity": 2,
        "getFreeQuantity": 1,
        "applicableCategories": ["retro"],
        "priority": 2,
    },
    {
        "name": "Weekend kit sale",
        "description": "15% off kids kits on weekends",
        "type": "percentage_off",
        "discountPercentage": 15,
        "applicableCategories": ["kids"],
        "eligibilityConditions": {"timeRestrictions": {"daysOfWeek": [0, 6]}},
    },
    {
        "name": "Big basket",
        "description": "5 off orders above 100",
        "type": "fixed_amount_off",
        "discountAmount": 5,
        "maxUses": 500,
        "eligibilityConditions": {"minCartValue": 100},
    },
]


async def seed_data():
    """Seed sample discount rules."""
    print("Starting database seeding...")

    service = DiscountRuleService()
    try:
        existing = {rule.name for rule in await service.list_rules()}
        for payload in SAMPLE_RULES:
            if payload["name"] in existing:
                print(f"Skipping existing rule '{payload['name']}'")
                continue
            rule = await service.create_rule(payload)
            print(f"Created {rule.type} rule {rule.id}: {rule.name}")

        print("Database seeding completed successfully.")
    except ServiceError as e:
        print(f"Error during seeding: {e.message}")
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_data())
