from datetime import timedelta

import pytest

from src.api.discount_rules.eligibility import (
    check_eligibility,
    eligible_items,
    is_item_applicable,
    is_rule_available,
)
from src.api.discount_rules.models import CustomerContext, EligibilityConditions
from src.config.constants import UserType
from src.config.settings import settings
from tests.constants import NOW
from tests.factories import cart_item, percentage_rule


class TestItemTargeting:
    def test_untargeted_rule_applies_to_every_item(self):
        rule = percentage_rule()
        assert is_item_applicable(rule, cart_item(category=None))
        assert is_item_applicable(rule, cart_item(category="retro"))

    def test_exclusion_beats_explicit_product_inclusion(self):
        rule = percentage_rule(
            applicable_product_ids=["a"], excluded_product_ids=["a"]
        )
        assert not is_item_applicable(rule, cart_item(id="a"))

    def test_product_list_takes_precedence_over_categories(self):
        rule = percentage_rule(
            applicable_product_ids=["a"], applicable_categories=["jersey"]
        )
        assert is_item_applicable(rule, cart_item(id="a", category="boots"))
        assert not is_item_applicable(rule, cart_item(id="b", category="jersey"))

    def test_category_targeting_requires_a_category(self):
        rule = percentage_rule(applicable_categories=["jersey"])
        assert is_item_applicable(rule, cart_item(category="jersey"))
        assert not is_item_applicable(rule, cart_item(category=None))
        assert not is_item_applicable(rule, cart_item(category="boots"))

    def test_result_does_not_depend_on_other_items(self):
        rule = percentage_rule(applicable_categories=["jersey"], excluded_product_ids=["b"])
        a = cart_item(id="a", category="jersey")
        b = cart_item(id="b", category="jersey")
        c = cart_item(id="c", category="boots")

        alone = is_item_applicable(rule, a)
        assert [i.id for i in eligible_items(rule, [c, b, a])] == ["a"]
        assert [i.id for i in eligible_items(rule, [a, c])] == ["a"]
        assert is_item_applicable(rule, a) is alone


class TestRuleAvailability:
    def test_active_rule_without_limits_is_available(self):
        assert is_rule_available(percentage_rule(), NOW)

    def test_inactive_rule_is_unavailable(self):
        assert not is_rule_available(percentage_rule(is_active=False), NOW)

    def test_rule_expiring_now_is_unavailable(self):
        assert not is_rule_available(percentage_rule(expires_at=NOW), NOW)
        assert is_rule_available(
            percentage_rule(expires_at=NOW + timedelta(seconds=1)), NOW
        )

    def test_exhausted_rule_is_unavailable(self):
        assert not is_rule_available(percentage_rule(max_uses=3, current_uses=3), NOW)
        assert is_rule_available(percentage_rule(max_uses=3, current_uses=2), NOW)


class TestCartConditions:
    def test_no_conditions_is_eligible(self):
        assert check_eligibility(None, [cart_item()], NOW).is_eligible

    def test_min_cart_value(self):
        conditions = EligibilityConditions(min_cart_value=100)

        check = check_eligibility(conditions, [cart_item(price=30, quantity=2)], NOW)

        assert not check.is_eligible
        assert check.reason == "Cart value too low"
        assert "€60.00" in check.message
        assert "€40.00" in check.how_to_qualify
        assert check_eligibility(
            conditions, [cart_item(price=50, quantity=2)], NOW
        ).is_eligible

    def test_category_item_counts(self):
        conditions = EligibilityConditions(
            required_categories=["retro"], min_category_items=2, max_category_items=3
        )

        too_few = check_eligibility(conditions, [cart_item(category="retro")], NOW)
        too_many = check_eligibility(
            conditions, [cart_item(category="retro", quantity=4)], NOW
        )
        just_right = check_eligibility(
            conditions, [cart_item(category="retro", quantity=2)], NOW
        )

        assert too_few.reason == "Not enough items from required categories"
        assert too_many.reason == "Too many items from required categories"
        assert just_right.is_eligible

    def test_required_categories_missing(self):
        conditions = EligibilityConditions(required_categories=["retro", "kids"])

        check = check_eligibility(conditions, [cart_item(category="jersey")], NOW)

        assert check.reason == "Missing required categories"
        assert "retro or kids" in check.message

    def test_excluded_categories_present(self):
        conditions = EligibilityConditions(excluded_categories=["sale"])
        cart = [cart_item(id="a"), cart_item(id="b", category="sale")]

        check = check_eligibility(conditions, cart, NOW)

        assert check.reason == "Excluded categories present"

    def test_first_failing_condition_wins(self):
        conditions = EligibilityConditions(
            min_cart_value=500, excluded_categories=["jersey"]
        )

        check = check_eligibility(conditions, [cart_item()], NOW)

        assert check.reason == "Cart value too low"


class TestTimeRestrictions:
    def _conditions(self, **window):
        return EligibilityConditions(time_restrictions=window)

    def test_days_of_week_are_sunday_based(self):
        # NOW is a Wednesday
        assert check_eligibility(self._conditions(days_of_week=[3]), [], NOW).is_eligible

        check = check_eligibility(self._conditions(days_of_week=[0, 6]), [], NOW)
        assert check.reason == "Not available today"
        assert "Sunday, Saturday" in check.message

    @pytest.mark.parametrize(
        "start,end,eligible",
        [
            ("09:00", "17:00", True),
            ("09:00", "12:00", True),
            ("12:01", "17:00", False),
            ("22:00", "02:00", False),
            ("11:00", "01:00", True),
        ],
    )
    def test_time_window(self, start, end, eligible):
        check = check_eligibility(
            self._conditions(start_time=start, end_time=end), [], NOW
        )
        assert check.is_eligible is eligible

    def test_window_past_midnight_includes_late_evening(self):
        late = NOW.replace(hour=23, minute=30)
        conditions = self._conditions(start_time="22:00", end_time="02:00")
        assert check_eligibility(conditions, [], late).is_eligible

    def test_single_sided_window(self):
        assert check_eligibility(self._conditions(start_time="08:00"), [], NOW).is_eligible
        check = check_eligibility(self._conditions(end_time="11:59"), [], NOW)
        assert check.reason == "Outside time window"

    def test_window_uses_store_timezone(self, monkeypatch):
        monkeypatch.setattr(settings, "DISCOUNT_TIMEZONE", "Europe/Madrid")
        # 12:00 UTC is 14:00 in Madrid during summer time
        conditions = self._conditions(start_time="13:00", end_time="15:00")
        assert check_eligibility(conditions, [], NOW).is_eligible


class TestUserRestrictions:
    def test_min_orders_needs_a_known_customer(self):
        conditions = EligibilityConditions(user_restrictions={"min_orders": 3})

        anonymous = check_eligibility(conditions, [], NOW)
        new_customer = check_eligibility(
            conditions, [], NOW, CustomerContext(order_count=1)
        )
        regular = check_eligibility(conditions, [], NOW, CustomerContext(order_count=3))

        assert anonymous.reason == "Not enough previous orders"
        assert not new_customer.is_eligible
        assert regular.is_eligible

    def test_user_types(self):
        conditions = EligibilityConditions(user_restrictions={"user_types": ["vip"]})

        vip = CustomerContext(user_type=UserType.VIP)
        returning = CustomerContext(user_type=UserType.RETURNING)

        assert check_eligibility(conditions, [], NOW, vip).is_eligible
        check = check_eligibility(conditions, [], NOW, returning)
        assert check.reason == "Customer segment not eligible"
        assert not check_eligibility(conditions, [], NOW).is_eligible
