"""
Pydantic Schemas for Copy Trading.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.constants import DEFAULT_FUTURES_LEVERAGE, DEFAULT_FUTURES_OPEN_TYPE, DEFAULT_OWNER_PERCENTAGE
from copy_trading.types import Market, OrderSide, OrderStatus, VipTierStatus


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# =============================================================
# REQUESTS
# =============================================================

class FollowRequest(WireModel):
    copy_code: str = Field(..., alias="copyCode", min_length=1)


class SpotOwnerOrderCreate(WireModel):
    symbol: str
    side: OrderSide
    order_type: str = Field(..., alias="type")
    quantity: Optional[Decimal] = None
    notional: Optional[Decimal] = None
    price: Optional[Decimal] = None
    limit_price: Optional[Decimal] = None
    expiration: Optional[datetime] = None
    percentage: Decimal = DEFAULT_OWNER_PERCENTAGE


class FuturesOwnerOrderCreate(WireModel):
    symbol: str
    side: OrderSide
    order_type: str = Field(..., alias="type")
    size: Decimal
    trigger_price: Decimal
    executive_price: Optional[Decimal] = None
    leverage: str = DEFAULT_FUTURES_LEVERAGE
    open_type: str = DEFAULT_FUTURES_OPEN_TYPE
    price_way: Optional[int] = None
    price_type: int = 1
    limit_price: Optional[Decimal] = None
    expiration: Optional[datetime] = None
    percentage: Decimal = DEFAULT_OWNER_PERCENTAGE


class VipTierCreate(WireModel):
    name: str = Field(..., alias="vipName", min_length=1)
    level: int = Field(..., alias="vipLevel", ge=0)
    status: VipTierStatus = Field(VipTierStatus.ACTIVE, alias="vipStatus")
    percentage: Decimal = Field(..., alias="vipPercentage", ge=0)


# =============================================================
# RESPONSES
# =============================================================

class OrderFillResponse(WireModel):
    price: Decimal
    quantity: Decimal
    fee: Decimal
    executed_at: datetime = Field(..., alias="executedAt")


class CopyOrderResponse(WireModel):
    id: str = Field(..., alias="orderId")
    market: Market
    copy_code: str = Field(..., alias="copyCode")
    owner: bool
    symbol: str
    side: OrderSide
    order_type: str = Field(..., alias="type")
    quantity: Decimal
    price: Optional[Decimal] = None
    limit_price: Optional[Decimal] = None
    leverage: Optional[str] = None
    open_type: Optional[str] = None
    trigger_price: Optional[Decimal] = None
    executive_price: Optional[Decimal] = None
    price_way: Optional[int] = None
    price_type: Optional[int] = None
    percentage: Decimal
    expiration: Optional[datetime] = None
    status: OrderStatus
    average_execution_price: Optional[Decimal] = Field(None, alias="averageExecutionPrice")
    executed_quantity: Decimal = Field(..., alias="executedQuantity")
    created_at: datetime = Field(..., alias="createdAt")


class FollowedOrderResponse(CopyOrderResponse):
    fills: List[OrderFillResponse] = Field(default_factory=list, alias="trades")


class FollowResponse(WireModel):
    success: bool = True
    message: str
    data: FollowedOrderResponse


class OwnerOrderResponse(WireModel):
    success: bool = True
    message: str
    data: CopyOrderResponse


class OrderListResponse(WireModel):
    success: bool = True
    data: List[FollowedOrderResponse]


class AvailableOrdersResponse(WireModel):
    success: bool = True
    data: List[CopyOrderResponse]


class AdminOrderResponse(FollowedOrderResponse):
    user_id: str = Field(..., alias="userId")
    source_order_id: Optional[str] = Field(None, alias="sourceOrderId")
    quote_asset_name: Optional[str] = Field(None, alias="quoteAssetName")
    settlement_attempts: int = Field(..., alias="settlementAttempts")
    last_error: Optional[str] = Field(None, alias="lastError")
    settled_at: Optional[datetime] = Field(None, alias="settledAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class AdminOrderListResponse(WireModel):
    success: bool = True
    data: List[AdminOrderResponse]


class FollowerSummary(WireModel):
    id: str = Field(..., alias="orderId")
    user_id: str = Field(..., alias="userId")
    status: OrderStatus
    created_at: datetime = Field(..., alias="createdAt")


class OrderDetailsData(WireModel):
    order: AdminOrderResponse
    followers: List[FollowerSummary]


class OrderDetailsResponse(WireModel):
    success: bool = True
    data: OrderDetailsData


class VipTierResponse(WireModel):
    id: str
    name: str = Field(..., alias="vipName")
    level: int = Field(..., alias="vipLevel")
    status: VipTierStatus = Field(..., alias="vipStatus")
    percentage: Decimal = Field(..., alias="vipPercentage")
    created_at: datetime = Field(..., alias="createdAt")


class VipTierListResponse(WireModel):
    success: bool = True
    data: List[VipTierResponse]


class SettlementRunResponse(WireModel):
    success: bool = True
    due: int
    settled: int
    skipped: int
    errors: int
    marked_failed: int = Field(..., alias="markedFailed")
