"""
Tests for the HTTP API.

============================================================
PURPOSE
============================================================
Request/response wiring, identity headers and the error
envelope. Business rules are covered by the service tests.

============================================================
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from core.config import LedgerConfig
from notifications import NotificationDispatcher
from app import create_app
from tests.conftest import START


USER = {"X-User-Id": "u1"}
ADMIN = {"X-User-Id": "admin", "X-User-Role": "admin"}


@pytest.fixture
def client(engine, clock):
    app = create_app(
        config=LedgerConfig.for_testing(),
        engine=engine,
        clock=clock,
        notifier=NotificationDispatcher([]),
    )
    return TestClient(app)


# ============================================================
# IDENTITY
# ============================================================

class TestIdentity:
    """Gateway headers."""

    def test_missing_user_is_401(self, client):
        response = client.get("/transfer/balances")

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_admin_routes_need_admin_role(self, client):
        response = client.get("/admin/vip-tiers", headers=USER)

        assert response.status_code == 403

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestEntrypoint:
    """Server startup."""

    def test_import_builds_no_app(self):
        import app as app_module

        assert not hasattr(app_module, "app")

    def test_runner_uses_factory(self, monkeypatch):
        import run_api

        monkeypatch.delenv("ENVIRONMENT", raising=False)
        with patch("run_api.uvicorn.run") as run, patch("run_api.setup_logging"):
            run_api.main()

        args, kwargs = run.call_args
        assert args == ("app:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["reload"] is False


# ============================================================
# TRANSFERS
# ============================================================

class TestTransferApi:
    """/transfer endpoints."""

    def test_fund_and_withdraw(self, client, fund):
        fund("u1", "exchange", "500")

        response = client.post(
            "/transfer/to-trade",
            json={"amount": "100", "destination": "spot", "coinId": "1280"},
            headers=USER,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["requiredVolume"]) == Decimal("200")
        assert data["feeType"] == "no_fee"
        assert data["transferType"] == "exchange_to_trade"

        response = client.post(
            "/transfer/to-exchange",
            json={"amount": "100", "source": "spot", "coinId": "1280"},
            headers=USER,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["fee"]) == Decimal("20")
        assert Decimal(data["netAmount"]) == Decimal("80")
        assert data["feeType"] == "penalty_fee"

        history = client.get("/transfer/history", headers=USER).json()["data"]
        assert sorted(h["transferType"] for h in history) == ["exchange_to_trade", "trade_to_exchange"]

    def test_insufficient_balance_envelope(self, client):
        response = client.post(
            "/transfer/to-trade",
            json={"amount": "1", "destination": "futures", "coinId": "1280"},
            headers=USER,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "insufficient_exchange_balance"

    def test_unsupported_asset(self, client):
        response = client.post(
            "/transfer/to-exchange",
            json={"amount": "1", "source": "spot", "coinId": "BTC"},
            headers=USER,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "unsupported_asset"

    def test_malformed_body_is_validation_error(self, client):
        response = client.post(
            "/transfer/between-trade",
            json={"amount": "abc", "fromAccount": "spot", "toAccount": "futures", "coinId": "1280"},
            headers=USER,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_volume_status_and_balances(self, client, fund):
        fund("u1", "exchange", "50")
        client.post(
            "/transfer/to-trade",
            json={"amount": "50", "destination": "futures", "coinId": "1280"},
            headers=USER,
        )

        status = client.get("/transfer/volume-status", headers=USER).json()["data"]
        assert Decimal(status["totalRequiredVolume"]) == Decimal("100")
        assert status["volumeMet"] is False

        balances = client.get("/transfer/balances?accountType=futures", headers=USER).json()["data"]
        assert len(balances) == 1
        assert Decimal(balances[0]["balance"]) == Decimal("50")


# ============================================================
# COPY TRADING
# ============================================================

class TestCopyTradingApi:
    """/admin and /trades endpoints."""

    def place_spot_order(self, client):
        response = client.post(
            "/admin/orders/spot",
            json={
                "symbol": "BTC_USDT",
                "side": "buy",
                "type": "limit",
                "quantity": "2",
                "price": "100",
                "expiration": (START + timedelta(days=1)).isoformat(),
            },
            headers=ADMIN,
        )
        assert response.status_code == 200
        return response.json()["data"]

    def test_follow_and_settle(self, client, fund, clock, balance_of):
        owner = self.place_spot_order(client)
        fund("u1", "spot", "10")

        available = client.get("/trades/available?market=spot", headers=USER).json()["data"]
        assert [o["copyCode"] for o in available] == [owner["copyCode"]]

        response = client.post("/trades/spot/follow", json={"copyCode": owner["copyCode"]}, headers=USER)
        assert response.status_code == 200
        followed = response.json()["data"]
        assert followed["status"] == "pending_profit"
        assert Decimal(followed["averageExecutionPrice"]) == Decimal("101")
        assert len(followed["trades"]) == 1

        again = client.post("/trades/spot/follow", json={"copyCode": owner["copyCode"]}, headers=USER)
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "already_following"

        clock.advance(days=1)
        result = client.post("/admin/settlement/run", headers=ADMIN).json()
        assert result["settled"] == 1
        assert result["markedFailed"] == 0
        assert balance_of("u1", "spot").balance == Decimal("12")

        orders = client.get("/trades/spot/orders", headers=USER).json()["data"]
        assert orders[0]["status"] == "completed"

    def test_expired_follow_is_410(self, client, fund, clock):
        owner = self.place_spot_order(client)
        fund("u1", "spot", "10")
        clock.advance(days=2)

        response = client.post("/trades/spot/follow", json={"copyCode": owner["copyCode"]}, headers=USER)

        assert response.status_code == 410

    def test_futures_follow_needs_tier(self, client, fund):
        tier = client.post(
            "/admin/vip-tiers",
            json={"vipName": "Gold", "vipLevel": 2, "vipPercentage": "3"},
            headers=ADMIN,
        ).json()
        owner = client.post(
            "/admin/orders/futures",
            json={"symbol": "BTC_USDT", "side": "buy", "type": "limit", "size": "1", "trigger_price": "200"},
            headers=ADMIN,
        ).json()["data"]
        fund("u1", "futures", "10")

        denied = client.post("/trades/futures/follow", json={"copyCode": owner["copyCode"]}, headers=USER)
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "ineligible"

        allowed = client.post(
            "/trades/futures/follow",
            json={"copyCode": owner["copyCode"]},
            headers={**USER, "X-Vip-Tier-Id": tier["id"]},
        )
        assert allowed.status_code == 200
        assert Decimal(allowed.json()["data"]["averageExecutionPrice"]) == Decimal("206")

    def test_unknown_copy_code_is_404(self, client):
        response = client.post("/trades/spot/follow", json={"copyCode": "ZZZZZZ"}, headers=USER)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"


# ============================================================
# ADMIN REPORTING
# ============================================================

class TestAdminReportingApi:
    """/admin transfer and order views."""

    def fund_and_withdraw(self, client, fund):
        fund("u1", "exchange", "500")
        client.post(
            "/transfer/to-trade",
            json={"amount": "200", "destination": "spot", "coinId": "1280"},
            headers=USER,
        )
        client.post(
            "/transfer/to-exchange",
            json={"amount": "100", "source": "spot", "coinId": "1280"},
            headers=USER,
        )

    def test_transfers_need_admin(self, client):
        assert client.get("/admin/transfers", headers=USER).status_code == 403
        assert client.get("/admin/transfer-stats", headers=USER).status_code == 403

    def test_all_transfers(self, client, fund):
        self.fund_and_withdraw(client, fund)

        response = client.get("/admin/transfers?limit=1&transferType=trade_to_exchange", headers=ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {
            "currentPage": 1, "totalPages": 1, "totalItems": 1, "itemsPerPage": 1,
        }
        assert data["transfers"][0]["userId"] == "u1"
        assert Decimal(data["transfers"][0]["fee"]) == Decimal("20")

    def test_transfer_stats(self, client, fund):
        self.fund_and_withdraw(client, fund)

        data = client.get("/admin/transfer-stats?period=7d", headers=ADMIN).json()["data"]

        assert data["period"] == "7d"
        assert data["totalTransfers"] == 2
        assert Decimal(data["totalVolume"]) == Decimal("300")
        assert Decimal(data["totalFees"]) == Decimal("20")
        assert [t["transferType"] for t in data["transfersByType"]] == [
            "exchange_to_trade", "trade_to_exchange",
        ]
        assert data["topCoins"][0]["coinName"] == "USDT"

    def test_transfer_stats_unknown_period(self, client):
        response = client.get("/admin/transfer-stats?period=1y", headers=ADMIN)

        assert response.status_code == 400
        assert response.json()["error"]["context"]["field"] == "period"

    def test_user_transfer_details(self, client, fund):
        self.fund_and_withdraw(client, fund)

        data = client.get(
            "/admin/user-transfers/u1?coinId=1280&accountType=spot", headers=ADMIN,
        ).json()["data"]

        assert len(data["transfers"]) == 1
        assert data["transfers"][0]["toAccount"] == "spot"
        assert Decimal(data["volumeStatus"]["totalRequiredVolume"]) == Decimal("400")

    def test_orders_and_details(self, client, fund):
        owner = TestCopyTradingApi().place_spot_order(client)
        fund("u1", "spot", "10")
        client.post("/trades/spot/follow", json={"copyCode": owner["copyCode"]}, headers=USER)

        orders = client.get("/admin/orders?market=spot&owner=false", headers=ADMIN).json()["data"]
        assert [o["userId"] for o in orders] == ["u1"]
        assert orders[0]["sourceOrderId"] == owner["orderId"]

        details = client.get(f"/admin/orders/{owner['orderId']}", headers=ADMIN).json()["data"]
        assert details["order"]["copyCode"] == owner["copyCode"]
        assert [f["userId"] for f in details["followers"]] == ["u1"]
        assert details["followers"][0]["status"] == "pending_profit"

    def test_unknown_order_is_404(self, client):
        response = client.get("/admin/orders/missing", headers=ADMIN)

        assert response.status_code == 404
