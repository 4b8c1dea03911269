"""
FastAPI Routers for Copy Trading.

Provides REST API for:
- Following owner orders (spot / futures)
- Listing available owner orders and a user's own orders
- Admin: owner order placement, order listing and details,
  VIP tiers, manual settlement
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from core.context import UserContext, current_admin, current_user
from copy_trading.schemas import (
    AdminOrderListResponse,
    AdminOrderResponse,
    AvailableOrdersResponse,
    CopyOrderResponse,
    FollowedOrderResponse,
    FollowerSummary,
    FollowRequest,
    FollowResponse,
    FuturesOwnerOrderCreate,
    OrderDetailsData,
    OrderDetailsResponse,
    OrderListResponse,
    OwnerOrderResponse,
    SettlementRunResponse,
    SpotOwnerOrderCreate,
    VipTierCreate,
    VipTierListResponse,
    VipTierResponse,
)
from copy_trading.service import CopyTradingService
from copy_trading.settlement import ProfitSettlementService
from copy_trading.types import Market, OrderStatus
from copy_trading.vip import VipTierService

router = APIRouter(prefix="/trades", tags=["Copy Trading"])
admin_router = APIRouter(prefix="/admin", tags=["Admin"])


# =============================================================
# HELPER: Get service instance
# =============================================================

def get_copy_service(request: Request) -> CopyTradingService:
    return request.app.state.copy_trading


def get_settlement_service(request: Request) -> ProfitSettlementService:
    return request.app.state.settlement


def get_vip_service(request: Request) -> VipTierService:
    return request.app.state.vip_tiers


# =============================================================
# FOLLOW ENDPOINTS
# =============================================================

@router.post("/spot/follow", response_model=FollowResponse)
def follow_spot_order(
    body: FollowRequest,
    user: UserContext = Depends(current_user),
    service: CopyTradingService = Depends(get_copy_service),
):
    """
    Follow a spot owner order.

    Profit is distributed at the owner order's expiration.
    """
    order = service.follow_spot(user, body.copy_code)
    return FollowResponse(
        message="Spot order followed successfully. Profit will be distributed at expiration.",
        data=FollowedOrderResponse.model_validate(order),
    )


@router.post("/futures/follow", response_model=FollowResponse)
def follow_futures_order(
    body: FollowRequest,
    user: UserContext = Depends(current_user),
    service: CopyTradingService = Depends(get_copy_service),
):
    """
    Follow a futures owner order.

    Requires a VIP tier; the tier sets the profit percentage.
    """
    order = service.follow_futures(user, body.copy_code)
    return FollowResponse(
        message="Futures order followed successfully. Profit will be distributed at expiration.",
        data=FollowedOrderResponse.model_validate(order),
    )


# =============================================================
# QUERY ENDPOINTS
# =============================================================

@router.get("/available", response_model=AvailableOrdersResponse)
def available_orders(
    market: Optional[Market] = Query(None),
    user: UserContext = Depends(current_user),
    service: CopyTradingService = Depends(get_copy_service),
):
    orders = service.available_orders(market)
    return AvailableOrdersResponse(data=[CopyOrderResponse.model_validate(o) for o in orders])


@router.get("/spot/orders", response_model=OrderListResponse)
def spot_orders(
    user: UserContext = Depends(current_user),
    service: CopyTradingService = Depends(get_copy_service),
):
    orders = service.user_orders(user.user_id, Market.SPOT)
    return OrderListResponse(data=[FollowedOrderResponse.model_validate(o) for o in orders])


@router.get("/futures/orders", response_model=OrderListResponse)
def futures_orders(
    user: UserContext = Depends(current_user),
    service: CopyTradingService = Depends(get_copy_service),
):
    orders = service.user_orders(user.user_id, Market.FUTURES)
    return OrderListResponse(data=[FollowedOrderResponse.model_validate(o) for o in orders])


# =============================================================
# ADMIN ENDPOINTS
# =============================================================

@admin_router.post("/orders/spot", response_model=OwnerOrderResponse)
def place_spot_owner_order(
    body: SpotOwnerOrderCreate,
    admin: UserContext = Depends(current_admin),
    service: CopyTradingService = Depends(get_copy_service),
):
    order = service.place_spot_owner_order(
        admin.user_id,
        symbol=body.symbol,
        side=body.side.value,
        order_type=body.order_type,
        quantity=body.quantity if body.quantity is not None else body.notional,
        price=body.price,
        limit_price=body.limit_price,
        expiration=body.expiration,
        percentage=body.percentage,
    )
    return OwnerOrderResponse(
        message="Order submitted successfully (simulated)",
        data=CopyOrderResponse.model_validate(order),
    )


@admin_router.post("/orders/futures", response_model=OwnerOrderResponse)
def place_futures_owner_order(
    body: FuturesOwnerOrderCreate,
    admin: UserContext = Depends(current_admin),
    service: CopyTradingService = Depends(get_copy_service),
):
    order = service.place_futures_owner_order(
        admin.user_id,
        symbol=body.symbol,
        side=body.side.value,
        order_type=body.order_type,
        size=body.size,
        trigger_price=body.trigger_price,
        executive_price=body.executive_price,
        leverage=body.leverage,
        open_type=body.open_type,
        price_way=body.price_way,
        price_type=body.price_type,
        limit_price=body.limit_price,
        expiration=body.expiration,
        percentage=body.percentage,
    )
    return OwnerOrderResponse(
        message="Futures order submitted successfully (simulated)",
        data=CopyOrderResponse.model_validate(order),
    )


@admin_router.get("/orders", response_model=AdminOrderListResponse)
def list_all_orders(
    market: Optional[Market] = Query(None),
    owner: Optional[bool] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    admin: UserContext = Depends(current_admin),
    service: CopyTradingService = Depends(get_copy_service),
):
    """Every user's copy orders, newest first."""
    orders = service.all_orders(market, owner=owner, status=status)
    return AdminOrderListResponse(data=[AdminOrderResponse.model_validate(o) for o in orders])


@admin_router.get("/orders/{order_id}", response_model=OrderDetailsResponse)
def order_details(
    order_id: str,
    admin: UserContext = Depends(current_admin),
    service: CopyTradingService = Depends(get_copy_service),
):
    order, followers = service.order_details(order_id)
    return OrderDetailsResponse(
        data=OrderDetailsData(
            order=AdminOrderResponse.model_validate(order),
            followers=[FollowerSummary.model_validate(f) for f in followers],
        ),
    )


@admin_router.post("/vip-tiers", response_model=VipTierResponse)
def create_vip_tier(
    body: VipTierCreate,
    admin: UserContext = Depends(current_admin),
    service: VipTierService = Depends(get_vip_service),
):
    tier = service.create_tier(body.name, body.level, body.percentage, body.status.value)
    return VipTierResponse.model_validate(tier)


@admin_router.get("/vip-tiers", response_model=VipTierListResponse)
def list_vip_tiers(
    admin: UserContext = Depends(current_admin),
    service: VipTierService = Depends(get_vip_service),
):
    return VipTierListResponse(data=[VipTierResponse.model_validate(t) for t in service.list_tiers()])


@admin_router.post("/settlement/run", response_model=SettlementRunResponse)
def run_settlement(
    admin: UserContext = Depends(current_admin),
    service: ProfitSettlementService = Depends(get_settlement_service),
):
    """Run one settlement sweep now."""
    result = service.run_sweep()
    return SettlementRunResponse(**result.to_dict())
