from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.api.discount_rules.engine import DiscountRuleEngine
from src.api.discount_rules.models import (
    READ_ONLY_RULE_FIELDS,
    ApplyDiscountRulesResponse,
    ApplySpecificRulesResponse,
    CartAnalysisResponse,
    CustomerContext,
    DiscountRuleSchema,
    UpdateDiscountRuleSchema,
    discount_rule_adapter,
)
from src.api.discount_rules.repository import DiscountRuleRepository
from src.shared.error_handler import ErrorHandler, handle_service_errors
from src.shared.exceptions import ResourceNotFoundException, ValidationException
from src.shared.utils import get_logger

logger = get_logger(__name__)


class DiscountRuleService:
    """Discount rule administration and cart discount application"""

    def __init__(self, repository=None, clock=None):
        self.logger = logger
        self._error_handler = ErrorHandler(__name__)
        self.repository = repository or DiscountRuleRepository()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.engine = DiscountRuleEngine(self.repository, clock=self.clock)

    # Cart discounts
    @handle_service_errors("applying discount rules")
    async def apply_discount_rules(
        self, cart_items, customer: Optional[CustomerContext] = None
    ) -> ApplyDiscountRulesResponse:
        return await self.engine.apply_discount_rules(cart_items, customer)

    @handle_service_errors("applying specific discount rules")
    async def apply_specific_rules(
        self,
        cart_items,
        rule_ids: List[int],
        customer: Optional[CustomerContext] = None,
    ) -> ApplySpecificRulesResponse:
        return await self.engine.apply_specific_rules(cart_items, rule_ids, customer)

    @handle_service_errors("analyzing cart discounts")
    async def analyze_cart(
        self, cart_items, customer: Optional[CustomerContext] = None
    ) -> CartAnalysisResponse:
        return await self.engine.analyze_cart(cart_items, customer)

    @handle_service_errors("retrieving discount rules by ID")
    async def get_active_rules_by_ids(self, rule_ids: List[int]) -> List[DiscountRuleSchema]:
        """Rules among ``rule_ids`` usable now: active, unexpired and not exhausted."""
        if any(rule_id <= 0 for rule_id in rule_ids):
            raise ValidationException(detail="Rule IDs must be positive integers")
        return await self.repository.get_active_rules_by_ids(
            rule_ids, self.clock()
        )

    # Rule administration
    @handle_service_errors("listing discount rules")
    async def list_rules(self) -> List[DiscountRuleSchema]:
        return await self.repository.list_rules()

    @handle_service_errors("retrieving discount rule by ID")
    async def get_rule(self, rule_id: int) -> DiscountRuleSchema:
        if rule_id <= 0:
            raise ValidationException(detail="Rule ID must be a positive integer")

        rule = await self.repository.get_rule(rule_id)
        if not rule:
            raise ResourceNotFoundException(detail=f"Discount rule {rule_id} not found")
        return rule

    @handle_service_errors("creating discount rule")
    async def create_rule(self, payload: Dict[str, Any]) -> DiscountRuleSchema:
        """
        Validate a create payload against its rule type and store it.

        ``id``, ``currentUses`` and timestamps are owned by the store and are
        ignored if sent.
        """
        if not isinstance(payload, dict):
            raise ValidationException(detail="Discount rule payload must be an object")

        rule = discount_rule_adapter.validate_python(payload)
        self._check_expiry(rule.expires_at)

        created = await self.repository.create_rule(rule)
        self.logger.info(f"Created {created.type} discount rule {created.id}")
        return created

    @handle_service_errors("updating discount rule")
    async def update_rule(
        self, rule_id: int, update_data: UpdateDiscountRuleSchema
    ) -> DiscountRuleSchema:
        existing = await self.get_rule(rule_id)

        changes = update_data.model_dump(mode="json", exclude_unset=True)
        if not changes:
            raise ValidationException(detail="No fields provided for update")
        if update_data.expires_at is not None:
            self._check_expiry(update_data.expires_at)

        merged = existing.model_dump(mode="json", exclude=READ_ONLY_RULE_FIELDS)
        merged.update(changes)
        rule = discount_rule_adapter.validate_python(merged)

        updated = await self.repository.update_rule(rule_id, rule)
        if not updated:
            raise ResourceNotFoundException(detail=f"Discount rule {rule_id} not found")
        self.logger.info(f"Updated discount rule {rule_id}")
        return updated

    @handle_service_errors("deleting discount rule")
    async def delete_rule(self, rule_id: int) -> None:
        if not await self.repository.delete_rule(rule_id):
            raise ResourceNotFoundException(detail=f"Discount rule {rule_id} not found")
        self.logger.info(f"Deleted discount rule {rule_id}")

    def _check_expiry(self, expires_at: Optional[datetime]) -> None:
        if expires_at is not None and expires_at <= self.clock():
            raise ValidationException(detail="Expiry date must be in the future")
