"""
Tests for the tool registry.
"""

import pytest
from pydantic import ValidationError

from conftest import ACCOUNT_ID, BUDGET_ID, FakeLedger, make_ledger
from reconciler.models import ClearedStatus
from reconciler.tools import (
    HandlerStrategy,
    ToolDefinition,
    ToolDependencyError,
    ToolNotFoundError,
    ToolRegistry,
    build_registry,
)
from reconciler.schemas import AccountRequest

ANALYZE_PAYLOAD = {
    "bank_transactions": [
        {"date": "2024-01-15", "amount": "-4.50", "payee": "Blue Bottle Coffee"},
        {"date": "2024-01-15", "amount": "22.22", "payee": "EvoCarShare"},
    ],
    "ledger_transactions": [
        {"id": "l1", "date": "2024-01-15", "amount": -4500, "payee_name": "Blue Bottle Coffee"},
    ],
    "statement_balance": "17.72",
}


class TestToolRegistry:
    """Test suite for registration and dispatch."""

    def test_builtin_tools(self):
        tools = {t["name"]: t for t in build_registry().list_tools()}

        assert set(tools) == {"analyze_statement", "get_account_balance", "reconcile_account"}
        assert tools["analyze_statement"]["strategy"] == "no_dependencies"
        assert tools["get_account_balance"]["strategy"] == "ledger"
        assert tools["reconcile_account"]["strategy"] == "ledger_and_fetcher"
        assert "properties" in tools["reconcile_account"]["input_schema"]

    def test_duplicate_registration(self):
        registry = build_registry()

        async def handler(request):
            return {}

        with pytest.raises(ValueError):
            registry.register(ToolDefinition(
                name="analyze_statement",
                description="again",
                strategy=HandlerStrategy.NO_DEPENDENCIES,
                input_model=AccountRequest,
                handler=handler,
            ))

    @pytest.mark.asyncio
    async def test_injects_declared_dependencies(self):
        received = {}
        ledger = FakeLedger()
        registry = ToolRegistry(ledger)

        async def with_ledger(injected_ledger, request):
            received["ledger"] = injected_ledger
            received["request"] = request
            return {"ok": True}

        registry.register(ToolDefinition(
            name="probe",
            description="probe",
            strategy=HandlerStrategy.LEDGER,
            input_model=AccountRequest,
            handler=with_ledger,
        ))

        result = await registry.dispatch("probe", {"budget_id": BUDGET_ID, "account_id": ACCOUNT_ID})

        assert result == {"ok": True}
        assert received["ledger"] is ledger
        assert received["request"].account_id == ACCOUNT_ID

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        with pytest.raises(ToolNotFoundError):
            await build_registry().dispatch("delete_everything", {})

    @pytest.mark.asyncio
    async def test_ledger_tool_without_ledger(self):
        with pytest.raises(ToolDependencyError):
            await build_registry().dispatch(
                "get_account_balance", {"budget_id": BUDGET_ID, "account_id": ACCOUNT_ID}
            )

    @pytest.mark.asyncio
    async def test_invalid_payload(self):
        with pytest.raises(ValidationError):
            await build_registry().dispatch("get_account_balance", {"budget_id": BUDGET_ID})


class TestBuiltinTools:
    """The reconciliation tools end to end against FakeLedger."""

    @pytest.mark.asyncio
    async def test_analyze_statement(self):
        result = await build_registry().dispatch("analyze_statement", ANALYZE_PAYLOAD)

        assert result["summary"]["auto_matched"] == 1
        assert result["summary"]["unmatched_bank"] == 1
        assert "recommendations" not in result

    @pytest.mark.asyncio
    async def test_matching_overrides(self):
        payload = dict(ANALYZE_PAYLOAD, matching={"auto_match_threshold": 101})

        with pytest.raises(ValidationError):
            await build_registry().dispatch("analyze_statement", payload)

    @pytest.mark.asyncio
    async def test_get_account_balance(self):
        ledger = FakeLedger([make_ledger("l1", 5000, cleared=ClearedStatus.CLEARED)])

        result = await build_registry(ledger).dispatch(
            "get_account_balance", {"budget_id": BUDGET_ID, "account_id": ACCOUNT_ID}
        )

        assert result == {"balance": 5000, "cleared_balance": 5000, "uncleared_balance": 0}

    @pytest.mark.asyncio
    async def test_reconcile_from_csv(self):
        ledger = FakeLedger([
            make_ledger("l1", -4500, payee="Blue Bottle Coffee"),
        ])

        result = await build_registry(ledger).dispatch("reconcile_account", {
            "budget_id": BUDGET_ID,
            "account_id": ACCOUNT_ID,
            "csv_data": "Date,Payee,Amount\n2024-01-15,Blue Bottle Coffee,-4.50\n",
            "statement_balance": "-4.50",
            "execute": True,
            "dry_run": False,
            "auto_update_cleared_status": True,
        })

        assert result["analysis"]["summary"]["auto_matched"] == 1
        assert result["execution"]["summary"]["transactions_updated"] == 1
        assert ledger.transactions["l1"].cleared == ClearedStatus.CLEARED

    @pytest.mark.asyncio
    async def test_reconcile_requires_statement(self):
        with pytest.raises(ValidationError):
            await build_registry(FakeLedger()).dispatch("reconcile_account", {
                "budget_id": BUDGET_ID,
                "account_id": ACCOUNT_ID,
                "statement_balance": "0",
            })


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
