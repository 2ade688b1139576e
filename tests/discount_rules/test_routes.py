from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from src.api.discount_rules.models import EligibilityConditions
from tests.constants import ADMIN_TOKEN, CUSTOMER_TOKEN, NOW, VIP_TOKEN
from tests.factories import bearer, fixed_amount_rule, percentage_rule

CART = {
    "cartItems": [
        {"id": "a", "name": "Home Jersey", "price": 20, "quantity": 3, "category": "jersey"}
    ]
}


@pytest.mark.asyncio
class TestApplyRoutes:
    async def test_apply_requires_authentication(self, client: AsyncClient):
        response = await client.post("/discount-rules/apply", json=CART)
        assert response.status_code in (401, 403)
        assert "error" in response.json()

    async def test_apply_rejects_invalid_token(self, client: AsyncClient):
        response = await client.post(
            "/discount-rules/apply", json=CART, headers=bearer("forged")
        )
        assert response.status_code == 401

    async def test_apply_returns_camel_case_discounts(self, client, repository):
        repository.add(
            percentage_rule(1, discount_percentage=10, applicable_categories=["jersey"])
        )

        response = await client.post(
            "/discount-rules/apply", json=CART, headers=bearer(CUSTOMER_TOKEN)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["totalDiscountAmount"] == 6
        assert body["message"] == "Applied 1 discount rule(s)"
        discount = body["discounts"][0]
        assert discount["ruleId"] == 1
        assert discount["ruleType"] == "percentage_off"
        assert discount["appliedToItems"] == ["a"]
        assert repository.rules[1].current_uses == 1

    async def test_apply_without_rules(self, client: AsyncClient):
        response = await client.post(
            "/discount-rules/apply", json=CART, headers=bearer(CUSTOMER_TOKEN)
        )
        assert response.status_code == 200
        assert response.json()["discounts"] == []
        assert response.json()["message"] == "No applicable discount rules found"

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"cartItems": []},
            {"cartItems": "a"},
            {"cartItems": [{"id": "a", "name": "A", "price": 10, "quantity": 0}]},
        ],
    )
    async def test_apply_rejects_malformed_cart(self, client, payload):
        response = await client.post(
            "/discount-rules/apply", json=payload, headers=bearer(CUSTOMER_TOKEN)
        )
        assert response.status_code == 400
        assert response.json()["error"]

    async def test_storage_failure_is_an_internal_error(self, client, repository):
        async def unreachable(now):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        repository.list_active_applicable_rules = unreachable

        response = await client.post(
            "/discount-rules/apply", json=CART, headers=bearer(CUSTOMER_TOKEN)
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    async def test_apply_specific(self, client, repository):
        repository.add(percentage_rule(1))
        repository.add(fixed_amount_rule(2, applicable_product_ids=["z"]))

        response = await client.post(
            "/discount-rules/apply-specific",
            json={**CART, "ruleIds": [1, 2]},
            headers=bearer(CUSTOMER_TOKEN),
        )

        body = response.json()
        assert response.status_code == 200
        assert [r["ruleId"] for r in body["appliedRules"]] == [1]
        assert body["failedRules"][0]["ruleId"] == 2
        assert body["totalDiscountAmount"] == 6
        assert "error" not in body

    async def test_apply_specific_without_valid_rules(self, client):
        response = await client.post(
            "/discount-rules/apply-specific",
            json={**CART, "ruleIds": [42]},
            headers=bearer(CUSTOMER_TOKEN),
        )
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "No valid discount rules found"


@pytest.mark.asyncio
class TestCheckCartRoute:
    async def test_anonymous_check_cart(self, client, repository):
        repository.add(percentage_rule(1))

        response = await client.post("/discount-rules/check-cart", json=CART)

        body = response.json()
        assert response.status_code == 200
        assert body["rules"][0]["isApplicable"] is True
        assert body["rules"][0]["potentialDiscount"] == 6
        assert body["cartSummary"] == {"totalItems": 3, "totalValue": 60}
        assert repository.increments == []

    async def test_customer_claims_are_used(self, client, repository):
        repository.add(
            percentage_rule(
                1,
                eligibility_conditions=EligibilityConditions(
                    user_restrictions={"user_types": ["vip"]}
                ),
            )
        )

        anonymous = await client.post("/discount-rules/check-cart", json=CART)
        vip = await client.post(
            "/discount-rules/check-cart", json=CART, headers=bearer(VIP_TOKEN)
        )

        assert anonymous.json()["rules"][0]["isApplicable"] is False
        assert vip.json()["rules"][0]["isApplicable"] is True


@pytest.mark.asyncio
class TestLookupRoute:
    async def test_lookup_returns_only_usable_rules(self, client, repository):
        repository.add(percentage_rule(1))
        repository.add(percentage_rule(2, is_active=False))
        repository.add(percentage_rule(3, expires_at=NOW - timedelta(hours=1)))
        repository.add(percentage_rule(4, max_uses=5, current_uses=5))

        response = await client.get("/discount-rules", params={"ids": "1, 2,3,4,5"})

        assert response.status_code == 200
        assert [rule["id"] for rule in response.json()] == [1]
        assert response.json()[0]["discountPercentage"] == 10

    @pytest.mark.parametrize("ids", [None, ",", "one"])
    async def test_lookup_rejects_bad_ids(self, client, ids):
        params = {"ids": ids} if ids is not None else {}
        response = await client.get("/discount-rules", params=params)
        assert response.status_code == 400


@pytest.mark.asyncio
class TestAdminRoutes:
    async def test_customers_cannot_manage_rules(self, client: AsyncClient):
        response = await client.get(
            "/admin/discount-rules", headers=bearer(CUSTOMER_TOKEN)
        )
        assert response.status_code == 403

    async def test_rule_lifecycle(self, client: AsyncClient):
        admin = bearer(ADMIN_TOKEN)
        payload = {
            "name": "Retro week",
            "description": "15% off retro jerseys",
            "type": "percentage_off",
            "discountPercentage": 15,
            "applicableCategories": ["retro"],
            "currentUses": 40,
            "priority": 4,
        }

        response = await client.post("/admin/discount-rules", json=payload, headers=admin)
        assert response.status_code == 201
        created = response.json()["data"]
        rule_id = created["id"]
        assert created["currentUses"] == 0
        assert created["type"] == "percentage_off"

        response = await client.put(
            f"/admin/discount-rules/{rule_id}", json={"priority": 7}, headers=admin
        )
        assert response.status_code == 200
        assert response.json()["data"]["priority"] == 7
        assert response.json()["data"]["discountPercentage"] == 15

        response = await client.get("/admin/discount-rules", headers=admin)
        assert [rule["id"] for rule in response.json()["data"]] == [rule_id]

        response = await client.delete(f"/admin/discount-rules/{rule_id}", headers=admin)
        assert response.status_code == 200

        response = await client.get(f"/admin/discount-rules/{rule_id}", headers=admin)
        assert response.status_code == 404
        assert "not found" in response.json()["error"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "x", "description": "y", "type": "percentage_off"},
            {"name": "x", "description": "y", "type": "quantity_based", "discountPercentage": 5},
            {"name": "x", "description": "y", "type": "free_shipping"},
            {
                "name": "x",
                "description": "y",
                "type": "quantity_based",
                "minQuantity": 5,
                "maxQuantity": 2,
                "discountAmount": 3,
            },
        ],
    )
    async def test_create_rejects_invalid_rules(self, client, payload):
        response = await client.post(
            "/admin/discount-rules", json=payload, headers=bearer(ADMIN_TOKEN)
        )
        assert response.status_code == 422
        assert response.json()["error"]

    async def test_create_rejects_past_expiry(self, client):
        payload = {
            "name": "Old",
            "description": "Already over",
            "type": "fixed_amount_off",
            "discountAmount": 5,
            "expiresAt": (NOW - timedelta(days=1)).isoformat(),
        }
        response = await client.post(
            "/admin/discount-rules", json=payload, headers=bearer(ADMIN_TOKEN)
        )
        assert response.status_code == 422
        assert response.json()["error"] == "Expiry date must be in the future"

    async def test_update_revalidates_type_change(self, client, repository):
        repository.add(percentage_rule(1))

        response = await client.put(
            "/admin/discount-rules/1",
            json={"type": "fixed_amount_off"},
            headers=bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 422
        assert repository.rules[1].type == "percentage_off"

    async def test_update_missing_rule(self, client):
        response = await client.put(
            "/admin/discount-rules/9", json={"priority": 2}, headers=bearer(ADMIN_TOKEN)
        )
        assert response.status_code == 404
