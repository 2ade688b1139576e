# Import all models so they are registered on Base.metadata

from .discount_rule import DiscountRule

__all__ = ["DiscountRule"]
