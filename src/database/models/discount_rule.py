from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    ARRAY,
    BOOLEAN,
    INTEGER,
    NUMERIC,
    CheckConstraint,
    Enum,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from src.config.constants import DiscountRuleType
from src.database.base import Base


class DiscountRule(Base):
    __tablename__ = "discount_rules"
    __table_args__ = (
        CheckConstraint("priority > 0", name="discount_rule_priority_positive"),
        CheckConstraint("current_uses >= 0", name="discount_rule_current_uses_non_negative"),
        CheckConstraint(
            "max_uses IS NULL OR max_uses > 0", name="discount_rule_max_uses_positive"
        ),
        CheckConstraint(
            "discount_percentage IS NULL OR (discount_percentage >= 0 AND discount_percentage <= 100)",
            name="discount_rule_percentage_range",
        ),
        # Active rule lookup, ordered by priority then creation time
        Index(
            "idx_discount_rules_active_priority",
            "is_active",
            "priority",
            "created_at",
            postgresql_where="is_active = true",
        ),
        Index("idx_discount_rules_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[DiscountRuleType] = mapped_column(
        Enum(
            DiscountRuleType,
            values_callable=lambda obj: [e.value for e in obj],
            name="discountruletype",
        ),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, server_default=text("TRUE")
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )  # NULL = never expires
    max_uses: Mapped[Optional[int]] = mapped_column(INTEGER, nullable=True)
    current_uses: Mapped[int] = mapped_column(
        INTEGER, nullable=False, server_default=text("0")
    )
    priority: Mapped[int] = mapped_column(
        INTEGER, nullable=False, server_default=text("1")
    )

    # quantity_based
    min_quantity: Mapped[Optional[int]] = mapped_column(INTEGER)
    max_quantity: Mapped[Optional[int]] = mapped_column(INTEGER)
    # quantity_based, percentage_off, fixed_amount_off
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(NUMERIC(5, 2))
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(NUMERIC(10, 2))
    # buy_x_get_y
    buy_quantity: Mapped[Optional[int]] = mapped_column(INTEGER)
    get_free_quantity: Mapped[Optional[int]] = mapped_column(INTEGER)
    free_product_ids: Mapped[List[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )

    # Targeting
    applicable_categories: Mapped[List[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )
    applicable_product_ids: Mapped[List[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )
    excluded_product_ids: Mapped[List[str]] = mapped_column(
        ARRAY(String), nullable=False, server_default=text("'{}'")
    )

    eligibility_conditions: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("NOW()"),
        onupdate=text("NOW()"),
    )
