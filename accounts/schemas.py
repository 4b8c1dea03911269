"""
Pydantic Schemas for Account Transfers.

Field aliases keep the camelCase wire names of the transfer API.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.constants import AccountType, FeeType, TransferType


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# =============================================================
# REQUESTS
# =============================================================

class TransferToTradeRequest(WireModel):
    amount: Decimal
    destination: AccountType
    coin_id: str = Field(..., alias="coinId")
    coin_name: Optional[str] = Field(None, alias="coinName")


class TransferToExchangeRequest(WireModel):
    amount: Decimal
    source: AccountType
    coin_id: str = Field(..., alias="coinId")
    coin_name: Optional[str] = Field(None, alias="coinName")


class TransferBetweenTradeRequest(WireModel):
    amount: Decimal
    from_account: AccountType = Field(..., alias="fromAccount")
    to_account: AccountType = Field(..., alias="toAccount")
    coin_id: str = Field(..., alias="coinId")
    coin_name: Optional[str] = Field(None, alias="coinName")


# =============================================================
# RESPONSES
# =============================================================

class TransferRecordResponse(WireModel):
    id: str = Field(..., alias="transferId")
    from_account: AccountType = Field(..., alias="fromAccount")
    to_account: AccountType = Field(..., alias="toAccount")
    asset_id: str = Field(..., alias="coinId")
    asset_name: str = Field(..., alias="coinName")
    amount: Decimal
    fee: Decimal
    fee_type: FeeType = Field(..., alias="feeType")
    net_amount: Decimal = Field(..., alias="netAmount")
    required_volume: Decimal = Field(..., alias="requiredVolume")
    current_volume: Decimal = Field(..., alias="currentVolume")
    volume_met: bool = Field(..., alias="volumeMet")
    status: str
    transfer_type: TransferType = Field(..., alias="transferType")
    created_at: datetime = Field(..., alias="createdAt")


class TransferResponse(WireModel):
    success: bool = True
    message: str
    data: TransferRecordResponse


class TransferHistoryResponse(WireModel):
    success: bool = True
    data: List[TransferRecordResponse]


class VolumeStatusData(WireModel):
    coin_id: str = Field(..., alias="coinId")
    coin_name: str = Field(..., alias="coinName")
    required_volume: Decimal = Field(..., alias="totalRequiredVolume")
    current_volume: Decimal = Field(..., alias="currentVolume")
    volume_met: bool = Field(..., alias="volumeMet")
    remaining_volume: Decimal = Field(..., alias="remainingVolume")
    progress_percentage: Decimal = Field(..., alias="progressPercentage")
    withdrawal_fee: Decimal = Field(..., alias="withdrawalFee")
    penalty_fee: Decimal = Field(..., alias="penaltyFee")


class VolumeStatusResponse(WireModel):
    success: bool = True
    data: VolumeStatusData


class BalanceResponse(WireModel):
    account_type: AccountType = Field(..., alias="accountType")
    asset_id: str = Field(..., alias="coinId")
    asset_name: str = Field(..., alias="coinName")
    balance: Decimal
    required_volume: Optional[Decimal] = Field(None, alias="requiredVolume")
    updated_at: datetime = Field(..., alias="updatedAt")


class BalanceListResponse(WireModel):
    success: bool = True
    data: List[BalanceResponse]


# =============================================================
# ADMIN RESPONSES
# =============================================================

class AdminTransferRecordResponse(TransferRecordResponse):
    user_id: str = Field(..., alias="userId")


class Pagination(WireModel):
    current_page: int = Field(..., alias="currentPage")
    total_pages: int = Field(..., alias="totalPages")
    total_items: int = Field(..., alias="totalItems")
    items_per_page: int = Field(..., alias="itemsPerPage")


class AdminTransferListData(WireModel):
    transfers: List[AdminTransferRecordResponse]
    pagination: Pagination


class AdminTransferListResponse(WireModel):
    success: bool = True
    data: AdminTransferListData


class TransferTypeStat(WireModel):
    transfer_type: TransferType = Field(..., alias="transferType")
    count: int
    volume: Decimal


class TransferStatusStat(WireModel):
    status: str
    count: int


class TopAssetStat(WireModel):
    asset_name: str = Field(..., alias="coinName")
    volume: Decimal
    count: int


class TransferStatsData(WireModel):
    period: str
    since: datetime
    total_transfers: int = Field(..., alias="totalTransfers")
    total_volume: Decimal = Field(..., alias="totalVolume")
    total_fees: Decimal = Field(..., alias="totalFees")
    transfers_by_type: List[TransferTypeStat] = Field(..., alias="transfersByType")
    transfers_by_status: List[TransferStatusStat] = Field(..., alias="transfersByStatus")
    top_assets: List[TopAssetStat] = Field(..., alias="topCoins")


class TransferStatsResponse(WireModel):
    success: bool = True
    data: TransferStatsData


class UserTransferDetailsData(WireModel):
    transfers: List[AdminTransferRecordResponse]
    volume_status: Optional[VolumeStatusData] = Field(None, alias="volumeStatus")


class UserTransferDetailsResponse(WireModel):
    success: bool = True
    data: UserTransferDetailsData
