"""
Tests for the ledger API client, using httpx.MockTransport.
"""

import json
import pytest
from datetime import date

import httpx
from tenacity import wait_none

from reconciler.integrations.errors import LedgerAPIError
from reconciler.integrations.ledger_client import LedgerClient
from reconciler.models import ClearedStatus, TransactionDraft, TransactionUpdate

BASE_URL = "https://ledger.test/v1"


def api_transaction(id: str, amount: int, **extra) -> dict:
    data = {
        "id": id,
        "date": "2024-01-15",
        "amount": amount,
        "payee_name": "Coffee Shop",
        "cleared": "uncleared",
        "approved": True,
        "account_id": "account-1",
        "deleted": False,
    }
    data.update(extra)
    return data


def draft(day: int = 15) -> TransactionDraft:
    return TransactionDraft(
        account_id="account-1",
        date=date(2024, 1, day),
        amount=-4500,
        payee_name="Coffee Shop",
        cleared=ClearedStatus.CLEARED,
        approved=True,
        import_id=f"RECON:bulk:{day:024d}",
    )


def client_for(handler) -> LedgerClient:
    return LedgerClient(
        access_token="token",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(LedgerClient._read.retry, "wait", wait_none())


class TestLedgerClientReads:
    """Read endpoints and retry behaviour."""

    @pytest.mark.asyncio
    async def test_list_transactions_skips_deleted(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"data": {"transactions": [
                api_transaction("t1", -4500),
                api_transaction("t2", -1000, deleted=True),
            ]}})

        async with client_for(handler) as client:
            transactions = await client.list_transactions(
                "budget-1", "account-1", since_date=date(2024, 1, 10)
            )

        assert [t.id for t in transactions] == ["t1"]
        assert seen["url"].path == "/v1/budgets/budget-1/accounts/account-1/transactions"
        assert seen["url"].params["since_date"] == "2024-01-10"
        assert seen["auth"] == "Bearer token"

    @pytest.mark.asyncio
    async def test_account_and_currency(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/settings"):
                return httpx.Response(200, json={"data": {"settings": {
                    "currency_format": {"iso_code": "CAD"},
                }}})
            return httpx.Response(200, json={"data": {"account": {
                "id": "account-1",
                "type": "creditCard",
                "balance": -50000,
                "cleared_balance": -40000,
                "uncleared_balance": -10000,
            }}})

        async with client_for(handler) as client:
            snapshot = await client.get_account("budget-1", "account-1")
            details = await client.get_account_details("budget-1", "account-1")
            currency = await client.get_currency("budget-1")

        assert snapshot.cleared_balance == -40000
        assert details["type"] == "creditCard"
        assert currency == "CAD"

    @pytest.mark.asyncio
    async def test_transport_failures_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"data": {"transactions": []}})

        async with client_for(handler) as client:
            assert await client.list_transactions("budget-1", "account-1") == []

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_status_errors_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(429, json={"error": {
                "id": "429", "name": "too_many_requests", "detail": "Too many requests",
            }})

        async with client_for(handler) as client:
            with pytest.raises(LedgerAPIError) as exc_info:
                await client.list_transactions("budget-1", "account-1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.details["error"]["name"] == "too_many_requests"
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_authentication_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={})

        async with client_for(handler) as client:
            with pytest.raises(LedgerAPIError) as exc_info:
                await client.get_account("budget-1", "account-1")

        assert exc_info.value.status_code == 401


class TestLedgerClientWrites:
    """Write endpoints."""

    @pytest.mark.asyncio
    async def test_bulk_create_reports_duplicates(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"data": {
                "transactions": [api_transaction("new-1", -4500, import_id=draft(15).import_id)],
                "duplicate_import_ids": [draft(16).import_id],
            }})

        async with client_for(handler) as client:
            response = await client.create_transactions("budget-1", [draft(15), draft(16)])

        assert len(bodies[0]["transactions"]) == 2
        assert bodies[0]["transactions"][0]["cleared"] == "cleared"
        assert [t.id for t in response.transactions] == ["new-1"]
        assert response.duplicate_import_ids == [draft(16).import_id]

    @pytest.mark.asyncio
    async def test_single_create_payload(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"data": {
                "transaction": api_transaction("new-1", -4500),
            }})

        async with client_for(handler) as client:
            response = await client.create_transaction("budget-1", draft())

        assert "transaction" in bodies[0]
        assert bodies[0]["transaction"]["amount"] == -4500
        assert response.transactions[0].id == "new-1"

    @pytest.mark.asyncio
    async def test_bulk_create_limit(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with client_for(handler) as client:
            with pytest.raises(ValueError):
                await client.create_transactions("budget-1", [draft() for _ in range(101)])

    @pytest.mark.asyncio
    async def test_writes_are_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(LedgerAPIError) as exc_info:
                await client.create_transaction("budget-1", draft())

        assert exc_info.value.status_code == 0
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_update_transactions(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {
                "transactions": [api_transaction("t1", -4500, cleared="cleared")],
            }})

        async with client_for(handler) as client:
            updated = await client.update_transactions(
                "budget-1", [TransactionUpdate(id="t1", cleared=ClearedStatus.CLEARED)]
            )

        assert bodies[0] == {"transactions": [{"id": "t1", "cleared": "cleared"}]}
        assert updated[0].cleared == ClearedStatus.CLEARED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
