"""
Eligibility checks for discount rules.

Two levels are evaluated:

* item targeting (``is_item_applicable``): which cart lines a rule touches,
  decided per (rule, item) pair with exclusion > product > category > all;
* cart conditions (``check_eligibility``): whether the cart and the caller
  qualify for the rule at all (cart value, categories, time windows,
  customer segment).

Everything here is pure; the current time is always passed in.
"""
from dataclasses import dataclass
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import List, Optional
from zoneinfo import ZoneInfo

from src.api.discount_rules.models import (
    CartItem,
    CustomerContext,
    DiscountRuleBase,
    EligibilityConditions,
)
from src.config.constants import DAY_NAMES
from src.config.settings import settings


@dataclass(frozen=True)
class EligibilityCheck:
    is_eligible: bool
    reason: str = ""
    message: str = ""
    how_to_qualify: str = ""


ELIGIBLE = EligibilityCheck(is_eligible=True)


def is_item_applicable(rule: DiscountRuleBase, item: CartItem) -> bool:
    if item.id in rule.excluded_product_ids:
        return False

    if rule.applicable_product_ids:
        return item.id in rule.applicable_product_ids

    if rule.applicable_categories:
        return item.category is not None and item.category in rule.applicable_categories

    # Untargeted rules apply to everything not excluded
    return True


def eligible_items(rule: DiscountRuleBase, cart_items: List[CartItem]) -> List[CartItem]:
    return [item for item in cart_items if is_item_applicable(rule, item)]


def is_rule_available(rule: DiscountRuleBase, now: datetime) -> bool:
    """Active, not expired and not exhausted."""
    if not rule.is_active:
        return False
    if rule.expires_at is not None and rule.expires_at <= now:
        return False
    if rule.max_uses is not None and rule.current_uses >= rule.max_uses:
        return False
    return True


def cart_value(cart_items: List[CartItem]) -> Decimal:
    return sum(
        (Decimal(str(item.price)) * item.quantity for item in cart_items), Decimal("0")
    )


def _money(value) -> str:
    return f"{settings.CURRENCY_SYMBOL}{Decimal(str(value)):.2f}"


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _store_timezone():
    if settings.DISCOUNT_TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(settings.DISCOUNT_TIMEZONE)


def _local_now(now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(_store_timezone())


def _in_window(current: time, start: Optional[time], end: Optional[time]) -> bool:
    if start is not None and end is not None:
        if start <= end:
            return start <= current <= end
        # Window wraps past midnight, e.g. 22:00-02:00
        return current >= start or current <= end
    if start is not None:
        return current >= start
    if end is not None:
        return current <= end
    return True


def check_eligibility(
    conditions: Optional[EligibilityConditions],
    cart_items: List[CartItem],
    now: datetime,
    customer: Optional[CustomerContext] = None,
) -> EligibilityCheck:
    """First failing condition wins; order mirrors what a shopper can act on."""
    if conditions is None:
        return ELIGIBLE

    total_value = cart_value(cart_items)

    if conditions.min_cart_value and total_value < Decimal(str(conditions.min_cart_value)):
        needed = Decimal(str(conditions.min_cart_value)) - total_value
        return EligibilityCheck(
            is_eligible=False,
            reason="Cart value too low",
            message=(
                f"Your cart value is {_money(total_value)}, but you need at least "
                f"{_money(conditions.min_cart_value)}"
            ),
            how_to_qualify=f"Add items worth {_money(needed)} more to qualify for this discount",
        )

    required = conditions.required_categories
    required_label = " or ".join(required)
    category_quantity = sum(
        item.quantity
        for item in cart_items
        if item.category is not None and item.category in required
    )

    if conditions.min_category_items and category_quantity < conditions.min_category_items:
        needed = conditions.min_category_items - category_quantity
        return EligibilityCheck(
            is_eligible=False,
            reason="Not enough items from required categories",
            message=(
                f"You have {category_quantity} items from required categories, "
                f"but need {conditions.min_category_items}"
            ),
            how_to_qualify=f"Add {needed} more items from {required_label} to qualify",
        )

    if conditions.max_category_items and category_quantity > conditions.max_category_items:
        excess = category_quantity - conditions.max_category_items
        return EligibilityCheck(
            is_eligible=False,
            reason="Too many items from required categories",
            message=(
                f"You have {category_quantity} items from required categories, "
                f"but maximum is {conditions.max_category_items}"
            ),
            how_to_qualify=f"Remove {excess} items from {required_label} to qualify",
        )

    if required and not any(item.category in required for item in cart_items):
        return EligibilityCheck(
            is_eligible=False,
            reason="Missing required categories",
            message=f"This discount requires items from {required_label}",
            how_to_qualify=f"Add items from {required_label} to qualify",
        )

    excluded = conditions.excluded_categories
    if excluded and any(
        item.category is not None and item.category in excluded for item in cart_items
    ):
        excluded_label = " or ".join(excluded)
        return EligibilityCheck(
            is_eligible=False,
            reason="Excluded categories present",
            message=f"This discount cannot be used with items from {excluded_label}",
            how_to_qualify=f"Remove items from {excluded_label} to qualify",
        )

    window = conditions.time_restrictions
    if window is not None:
        local_now = _local_now(now)

        if window.days_of_week:
            today = (local_now.weekday() + 1) % 7  # Python weeks start on Monday
            if today not in window.days_of_week:
                allowed_days = ", ".join(DAY_NAMES[day] for day in window.days_of_week)
                return EligibilityCheck(
                    is_eligible=False,
                    reason="Not available today",
                    message=f"This discount is only available on {allowed_days}",
                    how_to_qualify=f"Come back on {allowed_days} to use this discount",
                )

        start = _parse_hhmm(window.start_time) if window.start_time else None
        end = _parse_hhmm(window.end_time) if window.end_time else None
        current = local_now.time().replace(second=0, microsecond=0)
        if not _in_window(current, start, end):
            span = f"between {window.start_time or '00:00'} and {window.end_time or '23:59'}"
            return EligibilityCheck(
                is_eligible=False,
                reason="Outside time window",
                message=f"This discount is only available {span}",
                how_to_qualify=f"Come back {span} to use this discount",
            )

    restrictions = conditions.user_restrictions
    if restrictions is not None:
        if restrictions.min_orders:
            order_count = customer.order_count if customer else None
            if order_count is None or order_count < restrictions.min_orders:
                return EligibilityCheck(
                    is_eligible=False,
                    reason="Not enough previous orders",
                    message=(
                        f"This discount requires at least {restrictions.min_orders} "
                        "previous orders"
                    ),
                    how_to_qualify="Sign in and complete more orders to qualify",
                )

        if restrictions.user_types:
            user_type = customer.user_type if customer else None
            if user_type not in restrictions.user_types:
                allowed = ", ".join(t.value for t in restrictions.user_types)
                return EligibilityCheck(
                    is_eligible=False,
                    reason="Customer segment not eligible",
                    message=f"This discount is reserved for {allowed} customers",
                    how_to_qualify="Sign in with an eligible account to use this discount",
                )

    return ELIGIBLE
