"""
FastAPI Router for Account Transfers.

Provides REST API for:
- Exchange <-> trade and trade <-> trade transfers
- Transfer history
- Trading-volume status and fee schedule
- Balances
- Admin: all transfers, transfer statistics, per-user details
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from accounts.schemas import (
    AdminTransferListData,
    AdminTransferListResponse,
    AdminTransferRecordResponse,
    BalanceListResponse,
    BalanceResponse,
    Pagination,
    TransferBetweenTradeRequest,
    TransferHistoryResponse,
    TransferRecordResponse,
    TransferResponse,
    TransferStatsData,
    TransferStatsResponse,
    TransferToExchangeRequest,
    TransferToTradeRequest,
    UserTransferDetailsData,
    UserTransferDetailsResponse,
    VolumeStatusData,
    VolumeStatusResponse,
)
from accounts.transfer_engine import TransferEngine
from core.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_STATS_PERIOD,
    MAX_PAGE_SIZE,
    TRACKED_ASSET_ID,
    AccountType,
    TransferStatus,
    TransferType,
)
from core.context import UserContext, current_admin, current_user

router = APIRouter(prefix="/transfer", tags=["Transfers"])
admin_router = APIRouter(prefix="/admin", tags=["Admin"])


# =============================================================
# HELPER: Get service instance
# =============================================================

def get_transfer_engine(request: Request) -> TransferEngine:
    return request.app.state.transfer_engine


# =============================================================
# TRANSFER ENDPOINTS
# =============================================================

@router.post("/to-trade", response_model=TransferResponse)
def transfer_to_trade(
    body: TransferToTradeRequest,
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    """Move funds from the exchange account to spot or futures."""
    record = engine.transfer_to_trade(
        user.user_id, body.amount, body.destination, body.coin_id, body.coin_name,
    )
    return TransferResponse(
        message=f"Successfully transferred {record.amount} {record.asset_name} to {record.to_account} account",
        data=TransferRecordResponse.model_validate(record),
    )


@router.post("/to-exchange", response_model=TransferResponse)
def transfer_to_exchange(
    body: TransferToExchangeRequest,
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    """
    Move funds from spot or futures back to the exchange account.

    A penalty fee applies while the required trading volume is not met.
    """
    record = engine.transfer_to_exchange(
        user.user_id, body.amount, body.source, body.coin_id, body.coin_name,
    )
    return TransferResponse(
        message=f"Successfully transferred {record.net_amount} {record.asset_name} from {record.from_account} to Exchange",
        data=TransferRecordResponse.model_validate(record),
    )


@router.post("/between-trade", response_model=TransferResponse)
def transfer_between_trade(
    body: TransferBetweenTradeRequest,
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    record = engine.transfer_between_trade(
        user.user_id, body.amount, body.from_account, body.to_account,
        body.coin_id, body.coin_name,
    )
    return TransferResponse(
        message=f"Successfully transferred {record.amount} {record.asset_name} from {record.from_account} to {record.to_account}",
        data=TransferRecordResponse.model_validate(record),
    )


# =============================================================
# QUERY ENDPOINTS
# =============================================================

@router.get("/history", response_model=TransferHistoryResponse)
def transfer_history(
    limit: int = Query(100, ge=1, le=500),
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    """Transfers of the current user, newest first."""
    records = engine.history(user.user_id, limit=limit)
    return TransferHistoryResponse(
        data=[TransferRecordResponse.model_validate(r) for r in records],
    )


@router.get("/volume-status", response_model=VolumeStatusResponse)
def volume_status(
    coin_id: str = Query(TRACKED_ASSET_ID, alias="coinId"),
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    status = engine.volume_status(user.user_id, coin_id)
    return VolumeStatusResponse(data=VolumeStatusData.model_validate(status))


@router.get("/balances", response_model=BalanceListResponse)
def balances(
    account_type: Optional[AccountType] = Query(None, alias="accountType"),
    user: UserContext = Depends(current_user),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    rows = engine.balances(user.user_id, account_type)
    return BalanceListResponse(data=[BalanceResponse.model_validate(r) for r in rows])


# =============================================================
# ADMIN ENDPOINTS
# =============================================================

@admin_router.get("/transfers", response_model=AdminTransferListResponse)
def all_transfers(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[TransferStatus] = Query(None),
    transfer_type: Optional[TransferType] = Query(None, alias="transferType"),
    coin_id: Optional[str] = Query(None, alias="coinId"),
    admin: UserContext = Depends(current_admin),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    """Every user's transfers, newest first."""
    result = engine.all_transfers(
        page=page, limit=limit,
        status=status.value if status else None,
        transfer_type=transfer_type,
        asset_id=coin_id,
    )
    return AdminTransferListResponse(
        data=AdminTransferListData(
            transfers=[AdminTransferRecordResponse.model_validate(r) for r in result.records],
            pagination=Pagination(
                current_page=result.page,
                total_pages=result.total_pages,
                total_items=result.total,
                items_per_page=result.limit,
            ),
        ),
    )


@admin_router.get("/transfer-stats", response_model=TransferStatsResponse)
def transfer_stats(
    period: str = Query(DEFAULT_STATS_PERIOD),
    admin: UserContext = Depends(current_admin),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    """Transfer totals over the last 7d, 30d or 90d."""
    return TransferStatsResponse(data=TransferStatsData.model_validate(engine.transfer_stats(period)))


@admin_router.get("/user-transfers/{user_id}", response_model=UserTransferDetailsResponse)
def user_transfer_details(
    user_id: str,
    coin_id: Optional[str] = Query(None, alias="coinId"),
    account_type: Optional[AccountType] = Query(None, alias="accountType"),
    admin: UserContext = Depends(current_admin),
    engine: TransferEngine = Depends(get_transfer_engine),
):
    details = engine.user_transfer_details(user_id, asset_id=coin_id, account_type=account_type)
    return UserTransferDetailsResponse(
        data=UserTransferDetailsData(
            transfers=[AdminTransferRecordResponse.model_validate(r) for r in details["transfers"]],
            volume_status=(
                VolumeStatusData.model_validate(details["volume_status"])
                if details["volume_status"] is not None else None
            ),
        ),
    )
