"""
Discount algorithms, one per rule type.

Each calculator receives the rule and the cart items that already passed the
rule's targeting predicate, and returns a ``Calculation`` or ``None`` when
the rule's own conditions are not met. Calculators never touch storage.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional

from src.api.discount_rules.eligibility import eligible_items
from src.api.discount_rules.models import (
    BuyXGetYRuleSchema,
    CartItem,
    FixedAmountOffRuleSchema,
    FreeItem,
    PercentageOffRuleSchema,
    QuantityBasedRuleSchema,
)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass
class Calculation:
    discount_amount: Decimal
    applied_to_items: List[str]
    free_items: List[FreeItem] = field(default_factory=list)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _dec(value) -> Decimal:
    return Decimal(str(value))


def subtotal(items: List[CartItem]) -> Decimal:
    return sum((_dec(item.price) * item.quantity for item in items), Decimal("0"))


def total_quantity(items: List[CartItem]) -> int:
    return sum(item.quantity for item in items)


def calculate_quantity_based(
    rule: QuantityBasedRuleSchema, items: List[CartItem]
) -> Optional[Calculation]:
    # Only the quantity bounds gate this rule; an empty eligible set still
    # earns a flat tier amount when no minimum is set
    quantity = total_quantity(items)
    if rule.min_quantity and quantity < rule.min_quantity:
        return None
    if rule.max_quantity and quantity > rule.max_quantity:
        return None

    if rule.discount_percentage:
        discount = subtotal(items) * _dec(rule.discount_percentage) / HUNDRED
    elif rule.discount_amount:
        # Flat tier amount, not capped at the eligible subtotal
        discount = _dec(rule.discount_amount)
    else:
        return None

    return Calculation(discount, [item.id for item in items])


def calculate_buy_x_get_y(
    rule: BuyXGetYRuleSchema, items: List[CartItem]
) -> Optional[Calculation]:
    quantity = total_quantity(items)
    if not items or quantity < rule.buy_quantity:
        return None

    applications = quantity // rule.buy_quantity
    remaining = applications * rule.get_free_quantity

    if rule.free_product_ids:
        # One free budget shared by all named products, so a grant is never
        # counted once per product
        by_id = {}
        for item in items:
            by_id.setdefault(item.id, item)
        candidates = [by_id[pid] for pid in rule.free_product_ids if pid in by_id]
    else:
        # Cheapest first; sorted() is stable so equal prices keep cart order
        candidates = sorted(items, key=lambda item: item.price)

    discount = Decimal("0")
    free_items = []
    for item in candidates:
        if remaining <= 0:
            break
        freed = min(remaining, item.quantity)
        discount += _dec(item.price) * freed
        free_items.append(FreeItem(product_id=item.id, quantity=freed, name=item.name))
        remaining -= freed

    return Calculation(discount, [item.id for item in items], free_items)


def calculate_percentage_off(
    rule: PercentageOffRuleSchema, items: List[CartItem]
) -> Optional[Calculation]:
    if not items:
        return None

    discount = subtotal(items) * _dec(rule.discount_percentage) / HUNDRED
    return Calculation(discount, [item.id for item in items])


def calculate_fixed_amount_off(
    rule: FixedAmountOffRuleSchema, items: List[CartItem]
) -> Optional[Calculation]:
    if not items:
        return None

    discount = min(_dec(rule.discount_amount), subtotal(items))
    return Calculation(discount, [item.id for item in items])


CALCULATORS: Dict[type, Callable] = {
    QuantityBasedRuleSchema: calculate_quantity_based,
    BuyXGetYRuleSchema: calculate_buy_x_get_y,
    PercentageOffRuleSchema: calculate_percentage_off,
    FixedAmountOffRuleSchema: calculate_fixed_amount_off,
}


def calculate_discount(rule, cart_items: List[CartItem]) -> Optional[Calculation]:
    """Dispatch to the calculator for the rule's variant."""
    calculator = CALCULATORS.get(type(rule))
    if calculator is None:
        raise TypeError(f"No calculator registered for {type(rule).__name__}")
    return calculator(rule, eligible_items(rule, cart_items))
