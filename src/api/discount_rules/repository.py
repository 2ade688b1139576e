from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import or_, select, update

from src.api.discount_rules.models import (
    READ_ONLY_RULE_FIELDS,
    DiscountRuleSchema,
    discount_rule_adapter,
)
from src.config.constants import DiscountRuleType, UsageIncrement
from src.database.connection import AsyncSessionLocal
from src.database.models.discount_rule import DiscountRule
from src.shared.sqlalchemy_utils import sqlalchemy_to_dict
from src.shared.utils import get_logger

logger = get_logger(__name__)

# Columns that only some rule types use; cleared when a rule changes type
TYPE_SPECIFIC_DEFAULTS: Dict[str, Any] = {
    "min_quantity": None,
    "max_quantity": None,
    "discount_percentage": None,
    "discount_amount": None,
    "buy_quantity": None,
    "get_free_quantity": None,
    "free_product_ids": [],
}

# Explicit, stable evaluation order: priority first, then oldest rule first
PRIORITY_ORDER = (
    DiscountRule.priority.desc(),
    DiscountRule.created_at.asc(),
    DiscountRule.id.asc(),
)


def _available_filter(now: datetime):
    return (
        DiscountRule.is_active.is_(True),
        or_(DiscountRule.expires_at.is_(None), DiscountRule.expires_at > now),
        or_(
            DiscountRule.max_uses.is_(None),
            DiscountRule.current_uses < DiscountRule.max_uses,
        ),
    )


def _to_schema(row: DiscountRule) -> DiscountRuleSchema:
    data = sqlalchemy_to_dict(row)
    data["type"] = DiscountRuleType(data["type"]).value
    return discount_rule_adapter.validate_python(data)


def _to_schemas(rows) -> List[DiscountRuleSchema]:
    """Rows that no longer validate are logged and skipped."""
    rules = []
    for row in rows:
        try:
            rules.append(_to_schema(row))
        except ValidationError as e:
            logger.error(f"Skipping malformed discount rule {row.id}: {e}")
    return rules


def _column_values(rule: DiscountRuleSchema) -> Dict[str, Any]:
    values = dict(TYPE_SPECIFIC_DEFAULTS)
    values.update(
        rule.model_dump(exclude=READ_ONLY_RULE_FIELDS | {"eligibility_conditions"})
    )
    values["type"] = DiscountRuleType(values["type"])
    values["eligibility_conditions"] = (
        rule.eligibility_conditions.model_dump(mode="json")
        if rule.eligibility_conditions
        else None
    )
    return values


class DiscountRuleRepository:
    """PostgreSQL storage for discount rules."""

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    async def list_active_applicable_rules(self, now: datetime) -> List[DiscountRuleSchema]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DiscountRule)
                .where(*_available_filter(now))
                .order_by(*PRIORITY_ORDER)
            )
            return _to_schemas(result.scalars().all())

    async def get_active_rules_by_ids(
        self, rule_ids: List[int], now: datetime
    ) -> List[DiscountRuleSchema]:
        if not rule_ids:
            return []
        async with self._session_factory() as session:
            result = await session.execute(
                select(DiscountRule)
                .where(DiscountRule.id.in_(rule_ids), *_available_filter(now))
                .order_by(*PRIORITY_ORDER)
            )
            return _to_schemas(result.scalars().all())

    async def increment_usage(self, rule_id: int) -> UsageIncrement:
        """
        Atomically bump ``current_uses`` while the cap still allows it.

        The cap is re-checked inside the UPDATE, so two concurrent checkouts
        cannot both consume the last use.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(DiscountRule)
                .where(
                    DiscountRule.id == rule_id,
                    or_(
                        DiscountRule.max_uses.is_(None),
                        DiscountRule.current_uses < DiscountRule.max_uses,
                    ),
                )
                .values(current_uses=DiscountRule.current_uses + 1)
                .returning(DiscountRule.current_uses)
                .execution_options(synchronize_session=False)
            )
            new_count = result.scalar_one_or_none()
            if new_count is not None:
                await session.commit()
                return UsageIncrement.RECORDED

            exists = await session.scalar(
                select(DiscountRule.id).where(DiscountRule.id == rule_id)
            )
            return UsageIncrement.EXHAUSTED if exists else UsageIncrement.NOT_FOUND

    # Admin CRUD

    async def list_rules(self) -> List[DiscountRuleSchema]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DiscountRule).order_by(
                    DiscountRule.priority.desc(), DiscountRule.created_at.desc()
                )
            )
            return _to_schemas(result.scalars().all())

    async def get_rule(self, rule_id: int) -> Optional[DiscountRuleSchema]:
        async with self._session_factory() as session:
            rule = await session.get(DiscountRule, rule_id)
            return _to_schema(rule) if rule else None

    async def create_rule(self, rule: DiscountRuleSchema) -> DiscountRuleSchema:
        async with self._session_factory() as session:
            new_rule = DiscountRule(**_column_values(rule), current_uses=0)
            session.add(new_rule)
            await session.commit()
            await session.refresh(new_rule)
            return _to_schema(new_rule)

    async def update_rule(
        self, rule_id: int, rule: DiscountRuleSchema
    ) -> Optional[DiscountRuleSchema]:
        async with self._session_factory() as session:
            existing = await session.get(DiscountRule, rule_id)
            if not existing:
                return None

            for key, value in _column_values(rule).items():
                setattr(existing, key, value)

            await session.commit()
            await session.refresh(existing)
            return _to_schema(existing)

    async def delete_rule(self, rule_id: int) -> bool:
        async with self._session_factory() as session:
            existing = await session.get(DiscountRule, rule_id)
            if not existing:
                return False

            await session.delete(existing)
            await session.commit()
            return True
