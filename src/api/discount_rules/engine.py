"""
Discount rule orchestration.

Deciding which rules apply is pure (``evaluate_rule`` / ``evaluate_rules``);
usage accounting is a separate step over the resulting outcomes, run in
priority order once every rule has been evaluated.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from src.api.discount_rules.calculators import (
    calculate_discount,
    round_money,
    subtotal,
    total_quantity,
)
from src.api.discount_rules.eligibility import (
    cart_value,
    check_eligibility,
    eligible_items,
    is_rule_available,
)
from src.api.discount_rules.models import (
    ApplyDiscountRulesResponse,
    ApplySpecificRulesResponse,
    BuyXGetYRuleSchema,
    CartAnalysisResponse,
    CartItem,
    CartSummary,
    CustomerContext,
    DiscountResult,
    DiscountRuleSchema,
    FailedRule,
    QuantityBasedRuleSchema,
    RuleAnalysis,
    RuleRequirements,
)
from src.config.constants import DiscountRuleType, UsageIncrement
from src.shared.error_handler import format_validation_errors
from src.shared.exceptions import ValidationException
from src.shared.utils import get_logger

logger = get_logger(__name__)

NO_RULES_MESSAGE = "No applicable discount rules found"
NO_VALID_RULES_ERROR = "No valid discount rules found"


@dataclass
class CalculationError:
    rule_id: Optional[int]
    message: str
    exception: Exception


@dataclass
class RuleOutcome:
    """What happened to one rule: applied, skipped with a reason, or errored."""

    rule: DiscountRuleSchema
    result: Optional[DiscountResult] = None
    reason: str = ""
    error: Optional[CalculationError] = None

    @property
    def applied(self) -> bool:
        return self.result is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_result(rule, calculation, amount: Decimal) -> DiscountResult:
    return DiscountResult(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=DiscountRuleType(rule.type),
        description=rule.description,
        discount_amount=float(amount),
        discount_percentage=getattr(rule, "discount_percentage", None),
        applied_to_items=calculation.applied_to_items,
        free_items=calculation.free_items,
    )


def evaluate_rule(
    rule: DiscountRuleSchema,
    cart_items: List[CartItem],
    now: datetime,
    customer: Optional[CustomerContext] = None,
) -> RuleOutcome:
    if not is_rule_available(rule, now):
        return RuleOutcome(rule, reason="Rule is inactive, expired or fully used")

    try:
        eligibility = check_eligibility(
            rule.eligibility_conditions, cart_items, now, customer
        )
        if not eligibility.is_eligible:
            return RuleOutcome(rule, reason=eligibility.reason)

        calculation = calculate_discount(rule, cart_items)
    except Exception as e:
        logger.error(
            f"Error applying {rule.type} discount rule {rule.id}: {e}", exc_info=True
        )
        return RuleOutcome(
            rule,
            reason="Rule could not be evaluated",
            error=CalculationError(rule.id, str(e), e),
        )

    if calculation is None:
        return RuleOutcome(rule, reason="Rule conditions not met")

    amount = round_money(calculation.discount_amount)
    if amount <= 0:
        return RuleOutcome(rule, reason="No discount for this cart")

    return RuleOutcome(rule, result=_to_result(rule, calculation, amount))


def evaluate_rules(
    rules: List[DiscountRuleSchema],
    cart_items: List[CartItem],
    now: datetime,
    customer: Optional[CustomerContext] = None,
) -> List[RuleOutcome]:
    """Evaluate rules in the given order. Rules stack; nothing is persisted."""
    return [evaluate_rule(rule, cart_items, now, customer) for rule in rules]


def total_discount(discounts: List[DiscountResult]) -> float:
    total = sum(
        (Decimal(str(discount.discount_amount)) for discount in discounts),
        Decimal("0"),
    )
    return float(round_money(total))


def _targets_label(rule) -> str:
    if rule.applicable_categories:
        return " or ".join(rule.applicable_categories)
    return "applicable"


def _qualification_hint(rule, quantity: int, items: List[CartItem]) -> Tuple[str, str]:
    """Reason and how-to-qualify for rules whose item thresholds are unmet."""
    label = _targets_label(rule)

    if isinstance(rule, QuantityBasedRuleSchema):
        if rule.min_quantity and quantity < rule.min_quantity:
            needed = rule.min_quantity - quantity
            return (
                f"Need {needed} more applicable item(s)",
                f"Add {needed} more {label} items to your cart",
            )
        if rule.max_quantity and quantity > rule.max_quantity:
            excess = quantity - rule.max_quantity
            return (
                f"Too many applicable items (max: {rule.max_quantity})",
                f"Remove {excess} {label} items from your cart",
            )
        return "", ""

    if isinstance(rule, BuyXGetYRuleSchema):
        if quantity < rule.buy_quantity:
            needed = rule.buy_quantity - quantity
            return (
                f"Need {needed} more applicable item(s)",
                f"Add {needed} more {label} items to get "
                f"{rule.get_free_quantity} free",
            )
        return "", ""

    if not items:
        return (
            "No applicable items in cart",
            f"Add {label} items to your cart to qualify",
        )
    return "", ""


def analyze_rule(
    rule: DiscountRuleSchema,
    cart_items: List[CartItem],
    now: datetime,
    customer: Optional[CustomerContext] = None,
) -> RuleAnalysis:
    items = eligible_items(rule, cart_items)
    quantity = total_quantity(items)
    requirements = RuleRequirements(
        min_quantity=getattr(rule, "min_quantity", None),
        max_quantity=getattr(rule, "max_quantity", None),
        buy_quantity=getattr(rule, "buy_quantity", None),
        get_free_quantity=getattr(rule, "get_free_quantity", None),
        current_quantity=quantity,
        current_value=float(round_money(subtotal(items))),
    )
    base = dict(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=DiscountRuleType(rule.type),
        description=rule.description,
        requirements=requirements,
        applied_to_items=[item.id for item in items],
    )

    try:
        eligibility = check_eligibility(
            rule.eligibility_conditions, cart_items, now, customer
        )
        if not eligibility.is_eligible:
            return RuleAnalysis(
                **base,
                is_applicable=False,
                reason=eligibility.reason,
                eligibility_message=eligibility.message,
                how_to_qualify=eligibility.how_to_qualify,
            )

        reason, how_to_qualify = _qualification_hint(rule, quantity, items)
    except Exception as e:
        logger.error(f"Error analysing discount rule {rule.id}: {e}", exc_info=True)
        return RuleAnalysis(
            **base, is_applicable=False, reason="Rule could not be evaluated"
        )

    if reason:
        return RuleAnalysis(
            **base, is_applicable=False, reason=reason, how_to_qualify=how_to_qualify
        )

    outcome = evaluate_rule(rule, cart_items, now, customer)
    if not outcome.applied:
        return RuleAnalysis(**base, is_applicable=False, reason=outcome.reason)

    return RuleAnalysis(
        **base,
        is_applicable=True,
        reason="Ready to apply",
        potential_discount=outcome.result.discount_amount,
    )


def parse_cart_items(cart_items) -> List[CartItem]:
    if not isinstance(cart_items, list):
        raise ValidationException(detail="Cart items must be a list")
    try:
        return [
            item if isinstance(item, CartItem) else CartItem.model_validate(item)
            for item in cart_items
        ]
    except ValidationError as e:
        raise ValidationException(detail=format_validation_errors(e))


class DiscountRuleEngine:
    """Runs rule evaluation against a repository and records rule usage."""

    def __init__(self, repository, clock: Optional[Callable[[], datetime]] = None):
        self.repository = repository
        self._clock = clock or _utcnow

    async def record_usage(self, outcomes: List[RuleOutcome]) -> List[RuleOutcome]:
        """
        Increment usage for every applied outcome, in order.

        A rule whose cap was consumed concurrently loses its discount. A rule
        that vanished, or a failed write, keeps the discount already computed.
        """
        recorded = []
        for outcome in outcomes:
            if not outcome.applied:
                recorded.append(outcome)
                continue

            rule_id = outcome.rule.id
            try:
                status = await self.repository.increment_usage(rule_id)
            except Exception as e:
                logger.warning(
                    f"Usage accounting failed for discount rule {rule_id}, "
                    f"discount kept: {e}"
                )
                recorded.append(outcome)
                continue

            if status == UsageIncrement.EXHAUSTED:
                logger.warning(
                    f"Discount rule {rule_id} reached its usage limit concurrently, "
                    "discount voided"
                )
                recorded.append(RuleOutcome(outcome.rule, reason="Usage limit reached"))
            elif status == UsageIncrement.NOT_FOUND:
                logger.warning(
                    f"Discount rule {rule_id} no longer exists, usage not recorded"
                )
                recorded.append(outcome)
            else:
                recorded.append(outcome)
        return recorded

    async def apply_discount_rules(
        self, cart_items, customer: Optional[CustomerContext] = None
    ) -> ApplyDiscountRulesResponse:
        items = parse_cart_items(cart_items)
        now = self._clock()

        rules = await self.repository.list_active_applicable_rules(now)
        if not rules:
            return ApplyDiscountRulesResponse(message=NO_RULES_MESSAGE)

        outcomes = await self.record_usage(evaluate_rules(rules, items, now, customer))
        discounts = [outcome.result for outcome in outcomes if outcome.applied]

        logger.info(f"Applied {len(discounts)} of {len(rules)} active discount rules")
        return ApplyDiscountRulesResponse(
            discounts=discounts,
            total_discount_amount=total_discount(discounts),
            message=f"Applied {len(discounts)} discount rule(s)",
        )

    async def apply_specific_rules(
        self,
        cart_items,
        rule_ids: List[int],
        customer: Optional[CustomerContext] = None,
    ) -> ApplySpecificRulesResponse:
        items = parse_cart_items(cart_items)
        if not isinstance(rule_ids, list) or not rule_ids:
            raise ValidationException(detail="Rule IDs are required")
        now = self._clock()

        rules = await self.repository.get_active_rules_by_ids(rule_ids, now)
        if not rules:
            return ApplySpecificRulesResponse(success=False, error=NO_VALID_RULES_ERROR)

        outcomes = await self.record_usage(evaluate_rules(rules, items, now, customer))
        applied = [outcome.result for outcome in outcomes if outcome.applied]
        failed = [
            FailedRule(
                rule_id=outcome.rule.id,
                rule_name=outcome.rule.name,
                rule_type=DiscountRuleType(outcome.rule.type),
                description=outcome.rule.description,
                reason=outcome.reason,
            )
            for outcome in outcomes
            if not outcome.applied
        ]

        return ApplySpecificRulesResponse(
            applied_rules=applied,
            failed_rules=failed,
            total_discount_amount=total_discount(applied),
            message=f"Applied {len(applied)} of {len(rules)} requested discount rule(s)",
        )

    async def analyze_cart(
        self, cart_items, customer: Optional[CustomerContext] = None
    ) -> CartAnalysisResponse:
        items = parse_cart_items(cart_items)
        now = self._clock()

        summary = CartSummary(
            total_items=total_quantity(items),
            total_value=float(round_money(cart_value(items))),
        )
        rules = await self.repository.list_active_applicable_rules(now)
        if not rules:
            return CartAnalysisResponse(
                cart_summary=summary, message="No active discount rules found"
            )

        return CartAnalysisResponse(
            rules=[analyze_rule(rule, items, now, customer) for rule in rules],
            cart_summary=summary,
        )
