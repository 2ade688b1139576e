from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.config.constants import (
    DEFAULT_RULE_PRIORITY,
    HHMM_PATTERN,
    DiscountRuleType,
    UserType,
)


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Eligibility conditions


class TimeRestrictions(CamelModel):
    start_time: Optional[str] = Field(
        default=None, pattern=HHMM_PATTERN, description="HH:MM, store timezone"
    )
    end_time: Optional[str] = Field(
        default=None, pattern=HHMM_PATTERN, description="HH:MM, store timezone"
    )
    days_of_week: List[Annotated[int, Field(ge=0, le=6)]] = Field(
        default_factory=list, description="0 = Sunday ... 6 = Saturday"
    )


class UserRestrictions(CamelModel):
    min_orders: Optional[int] = Field(default=None, ge=0)
    user_types: List[UserType] = Field(default_factory=list)


class EligibilityConditions(CamelModel):
    min_cart_value: Optional[float] = Field(default=None, ge=0)
    min_category_items: Optional[int] = Field(default=None, ge=1)
    max_category_items: Optional[int] = Field(default=None, ge=1)
    required_categories: List[str] = Field(default_factory=list)
    excluded_categories: List[str] = Field(default_factory=list)
    time_restrictions: Optional[TimeRestrictions] = None
    user_restrictions: Optional[UserRestrictions] = None


# Discount rules


class DiscountRuleBase(CamelModel):
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    is_active: bool = Field(default=True, description="Inactive rules are never evaluated")
    expires_at: Optional[datetime] = Field(default=None, description="NULL = never expires")
    max_uses: Optional[int] = Field(default=None, ge=1)
    current_uses: int = Field(default=0, ge=0)
    priority: int = Field(
        default=DEFAULT_RULE_PRIORITY, ge=1, description="Higher value is evaluated first"
    )
    applicable_categories: List[str] = Field(default_factory=list)
    applicable_product_ids: List[str] = Field(default_factory=list)
    excluded_product_ids: List[str] = Field(default_factory=list)
    eligibility_conditions: Optional[EligibilityConditions] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "applicable_categories",
        "applicable_product_ids",
        "excluded_product_ids",
        mode="before",
    )
    @classmethod
    def _clean_id_list(cls, value):
        if value is None:
            return []
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]

    @field_validator("expires_at", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class QuantityBasedRuleSchema(DiscountRuleBase):
    type: Literal["quantity_based"] = "quantity_based"
    min_quantity: Optional[int] = Field(default=None, ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    discount_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_thresholds(self):
        if self.min_quantity is None and self.max_quantity is None:
            raise ValueError("Quantity-based rules require min or max quantity")
        if not self.discount_percentage and not self.discount_amount:
            raise ValueError(
                "Quantity-based rules require discount percentage or amount"
            )
        if (
            self.min_quantity is not None
            and self.max_quantity is not None
            and self.min_quantity > self.max_quantity
        ):
            raise ValueError("minQuantity cannot be greater than maxQuantity")
        return self


class BuyXGetYRuleSchema(DiscountRuleBase):
    type: Literal["buy_x_get_y"] = "buy_x_get_y"
    buy_quantity: int = Field(..., ge=1)
    get_free_quantity: int = Field(..., ge=1)
    free_product_ids: List[str] = Field(
        default_factory=list,
        description="Products that can be granted for free; empty = cheapest eligible items",
    )

    @field_validator("free_product_ids", mode="before")
    @classmethod
    def _clean_free_products(cls, value):
        if value is None:
            return []
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]


class PercentageOffRuleSchema(DiscountRuleBase):
    type: Literal["percentage_off"] = "percentage_off"
    discount_percentage: float = Field(..., gt=0, le=100)


class FixedAmountOffRuleSchema(DiscountRuleBase):
    type: Literal["fixed_amount_off"] = "fixed_amount_off"
    discount_amount: float = Field(..., gt=0)


DiscountRuleSchema = Annotated[
    Union[
        QuantityBasedRuleSchema,
        BuyXGetYRuleSchema,
        PercentageOffRuleSchema,
        FixedAmountOffRuleSchema,
    ],
    Field(discriminator="type"),
]

discount_rule_adapter = TypeAdapter(DiscountRuleSchema)

# Fields owned by the store, never taken from a create/update payload
READ_ONLY_RULE_FIELDS = {"id", "current_uses", "created_at", "updated_at"}


class UpdateDiscountRuleSchema(CamelModel):
    """Partial update; the merged rule is re-validated as a whole."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    type: Optional[DiscountRuleType] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    priority: Optional[int] = Field(default=None, ge=1)
    min_quantity: Optional[int] = Field(default=None, ge=1)
    max_quantity: Optional[int] = Field(default=None, ge=1)
    discount_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[float] = Field(default=None, ge=0)
    buy_quantity: Optional[int] = Field(default=None, ge=1)
    get_free_quantity: Optional[int] = Field(default=None, ge=1)
    free_product_ids: Optional[List[str]] = None
    applicable_categories: Optional[List[str]] = None
    applicable_product_ids: Optional[List[str]] = None
    excluded_product_ids: Optional[List[str]] = None
    eligibility_conditions: Optional[EligibilityConditions] = None

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


# Cart and results


class CartItem(CamelModel):
    id: str = Field(..., min_length=1)
    name: str
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None
    category: Optional[str] = None


class CustomerContext(CamelModel):
    """What the identity provider tells us about the caller."""

    user_type: Optional[UserType] = None
    order_count: Optional[int] = Field(default=None, ge=0)


class FreeItem(CamelModel):
    product_id: str
    quantity: int
    name: str


class DiscountResult(CamelModel):
    rule_id: Optional[int] = None
    rule_name: str
    rule_type: DiscountRuleType
    description: str
    discount_amount: float = Field(..., ge=0)
    discount_percentage: Optional[float] = None
    applied_to_items: List[str] = Field(default_factory=list)
    free_items: List[FreeItem] = Field(default_factory=list)


class FailedRule(CamelModel):
    rule_id: Optional[int] = None
    rule_name: str
    rule_type: DiscountRuleType
    description: str
    reason: str


class ApplyDiscountRulesRequest(CamelModel):
    cart_items: List[CartItem] = Field(..., min_length=1)


class ApplySpecificRulesRequest(ApplyDiscountRulesRequest):
    rule_ids: List[int] = Field(..., min_length=1)


class ApplyDiscountRulesResponse(CamelModel):
    success: bool = True
    discounts: List[DiscountResult] = Field(default_factory=list)
    total_discount_amount: float = 0.0
    message: str


class ApplySpecificRulesResponse(CamelModel):
    success: bool = True
    applied_rules: List[DiscountResult] = Field(default_factory=list)
    failed_rules: List[FailedRule] = Field(default_factory=list)
    total_discount_amount: float = 0.0
    message: Optional[str] = None
    error: Optional[str] = None


class RuleRequirements(CamelModel):
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    buy_quantity: Optional[int] = None
    get_free_quantity: Optional[int] = None
    current_quantity: int
    current_value: float


class RuleAnalysis(CamelModel):
    rule_id: Optional[int] = None
    rule_name: str
    rule_type: DiscountRuleType
    description: str
    is_applicable: bool
    reason: str
    potential_discount: float = 0.0
    requirements: RuleRequirements
    applied_to_items: List[str] = Field(default_factory=list)
    eligibility_message: str = ""
    how_to_qualify: str = ""


class CartSummary(CamelModel):
    total_items: int
    total_value: float


class CartAnalysisResponse(CamelModel):
    success: bool = True
    rules: List[RuleAnalysis] = Field(default_factory=list)
    cart_summary: Optional[CartSummary] = None
    message: Optional[str] = None
