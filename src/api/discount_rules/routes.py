from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse

from src.api.discount_rules.models import (
    ApplyDiscountRulesRequest,
    ApplySpecificRulesRequest,
    CustomerContext,
    DiscountRuleSchema,
    UpdateDiscountRuleSchema,
)
from src.api.discount_rules.service import DiscountRuleService
from src.config.constants import UserRole
from src.core.responses import success_response
from src.dependencies.auth import RoleChecker, get_customer, get_optional_customer
from src.shared.exceptions import BadRequestException

discount_rules_router = APIRouter(prefix="/discount-rules", tags=["Discount Rules"])
admin_discount_rules_router = APIRouter(
    prefix="/admin/discount-rules",
    tags=["Discount Rules Admin"],
    dependencies=[Depends(RoleChecker([UserRole.ADMIN]))],
)
discount_rule_service = DiscountRuleService()


def _camel(model, **kwargs) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, **kwargs)


def _parse_rule_ids(ids: str) -> List[int]:
    parts = [part.strip() for part in ids.split(",") if part.strip()]
    if not parts:
        raise BadRequestException(detail="At least one valid rule ID is required")
    try:
        return [int(part) for part in parts]
    except ValueError:
        raise BadRequestException(detail="Rule IDs must be integers")


# Cart endpoints
@discount_rules_router.post(
    "/apply",
    summary="Apply all active discount rules to a cart",
)
async def apply_discount_rules(
    request: ApplyDiscountRulesRequest,
    customer: CustomerContext = Depends(get_customer),
):
    result = await discount_rule_service.apply_discount_rules(
        request.cart_items, customer
    )
    return JSONResponse(content=_camel(result))


@discount_rules_router.post(
    "/apply-specific",
    summary="Apply a chosen set of discount rules to a cart",
)
async def apply_specific_rules(
    request: ApplySpecificRulesRequest,
    customer: CustomerContext = Depends(get_customer),
):
    result = await discount_rule_service.apply_specific_rules(
        request.cart_items, request.rule_ids, customer
    )
    return JSONResponse(content=_camel(result, exclude_none=True))


@discount_rules_router.post(
    "/check-cart",
    summary="Explain which discount rules a cart qualifies for",
)
async def check_cart(
    request: ApplyDiscountRulesRequest,
    customer: Optional[CustomerContext] = Depends(get_optional_customer),
):
    result = await discount_rule_service.analyze_cart(request.cart_items, customer)
    return JSONResponse(content=_camel(result, exclude_none=True))


@discount_rules_router.get("", summary="Get active discount rules by ID")
async def get_discount_rules_by_ids(
    ids: Optional[str] = Query(None, description="Comma-separated rule IDs"),
):
    if not ids:
        raise BadRequestException(detail="Rule IDs are required")

    rules = await discount_rule_service.get_active_rules_by_ids(_parse_rule_ids(ids))
    return JSONResponse(content=[_camel(rule) for rule in rules])


# Admin endpoints
@admin_discount_rules_router.get("", summary="List all discount rules (Admin only)")
async def list_discount_rules():
    rules = await discount_rule_service.list_rules()
    return success_response([_camel(rule) for rule in rules])


@admin_discount_rules_router.get(
    "/{rule_id}", summary="Get a discount rule (Admin only)"
)
async def get_discount_rule(rule_id: int):
    rule = await discount_rule_service.get_rule(rule_id)
    return success_response(_camel(rule))


@admin_discount_rules_router.post(
    "",
    summary="Create a discount rule (Admin only)",
    status_code=status.HTTP_201_CREATED,
)
async def create_discount_rule(payload: Dict[str, Any] = Body(...)):
    rule: DiscountRuleSchema = await discount_rule_service.create_rule(payload)
    return success_response(
        _camel(rule),
        message="Discount rule created",
        status_code=status.HTTP_201_CREATED,
    )


@admin_discount_rules_router.put(
    "/{rule_id}", summary="Update a discount rule (Admin only)"
)
async def update_discount_rule(rule_id: int, update_data: UpdateDiscountRuleSchema):
    rule = await discount_rule_service.update_rule(rule_id, update_data)
    return success_response(_camel(rule), message="Discount rule updated")


@admin_discount_rules_router.delete(
    "/{rule_id}", summary="Delete a discount rule (Admin only)"
)
async def delete_discount_rule(rule_id: int):
    await discount_rule_service.delete_rule(rule_id)
    return success_response(None, message="Discount rule deleted")
