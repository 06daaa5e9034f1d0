"""
Tool registry.

Each tool declares which dependencies its handler needs by picking one of a
closed set of handler strategies at registration time. Dispatch validates the
payload against the tool's input model and injects exactly those dependencies.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import structlog
from pydantic import BaseModel

from .config import Settings, get_settings
from .ingestion import BankStatementCSVParser
from .integrations.ledger import LedgerAccess
from .reconciliation import ReconciliationAnalyzer, ReconciliationService, TransactionFetcher
from .schemas import AccountRequest, AnalyzeRequest, ReconcileRequest

logger = structlog.get_logger()


class HandlerStrategy(str, Enum):
    """
    Dependency set injected into a tool handler.

    NO_DEPENDENCIES: handler(request)
    LEDGER: handler(ledger, request)
    LEDGER_AND_FETCHER: handler(ledger, fetcher, request)
    """
    NO_DEPENDENCIES = "no_dependencies"
    LEDGER = "ledger"
    LEDGER_AND_FETCHER = "ledger_and_fetcher"


class ToolNotFoundError(LookupError):
    """Raised when dispatching an unregistered tool."""


class ToolDependencyError(RuntimeError):
    """Raised when a tool needs a dependency the registry was built without."""


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    strategy: HandlerStrategy
    input_model: Type[BaseModel]
    handler: Callable[..., Awaitable[Dict[str, Any]]]


class ToolRegistry:
    """Named tools with explicit dependency strategies."""

    def __init__(
        self,
        ledger: Optional[LedgerAccess] = None,
        fetcher: Optional[TransactionFetcher] = None,
    ):
        self.ledger = ledger
        self.fetcher = fetcher or (TransactionFetcher(ledger) if ledger is not None else None)
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "strategy": tool.strategy.value,
                "input_schema": tool.input_model.model_json_schema(),
            }
            for tool in self._tools.values()
        ]

    async def dispatch(self, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate the payload and run the tool.

        Raises:
            ToolNotFoundError: unknown tool name
            ToolDependencyError: the registry lacks the ledger
            pydantic.ValidationError: invalid payload
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f"Unknown tool: {name}")

        request = tool.input_model.model_validate(payload)
        logger.info("Dispatching tool", tool=name, strategy=tool.strategy.value)

        if tool.strategy == HandlerStrategy.NO_DEPENDENCIES:
            return await tool.handler(request)

        if self.ledger is None:
            raise ToolDependencyError(f"Tool {name} requires ledger access")
        if tool.strategy == HandlerStrategy.LEDGER:
            return await tool.handler(self.ledger, request)
        return await tool.handler(self.ledger, self.fetcher, request)


# Handlers


async def analyze_statement(request: AnalyzeRequest) -> Dict[str, Any]:
    config = request.matching.resolve(get_settings())
    analysis = ReconciliationAnalyzer(config).analyze(
        [t.to_model(row=i + 1) for i, t in enumerate(request.bank_transactions)],
        [t.to_model() for t in request.ledger_transactions],
        request.statement_balance,
        currency=request.currency,
        account_id=request.account_id,
        budget_id=request.budget_id,
        invert_bank_amounts=request.invert_bank_amounts,
    )
    return analysis.to_dict()


async def get_account_balance(ledger: LedgerAccess, request: AccountRequest) -> Dict[str, Any]:
    snapshot = await ledger.get_account(request.budget_id, request.account_id)
    return snapshot.to_dict()


async def reconcile_account(
    ledger: LedgerAccess,
    fetcher: TransactionFetcher,
    request: ReconcileRequest,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    settings = settings or get_settings()

    if request.csv_data is not None:
        parser = BankStatementCSVParser(date_format=request.date_format)
        bank_transactions = parser.parse(request.csv_data).transactions
    else:
        bank_transactions = [
            t.to_model(row=i + 1) for i, t in enumerate(request.bank_transactions or [])
        ]

    service = ReconciliationService(ledger, fetcher=fetcher, settings=settings)
    outcome = await service.reconcile_account(
        request.budget_id,
        request.account_id,
        bank_transactions,
        request.statement_balance,
        statement_date=request.statement_date,
        execute=request.execute,
        flags=request.execution_flags(settings),
        config=request.matching.resolve(settings),
        invert_bank_amounts=request.invert_bank_amounts,
    )
    return outcome.to_dict()


def build_registry(
    ledger: Optional[LedgerAccess] = None,
    fetcher: Optional[TransactionFetcher] = None,
) -> ToolRegistry:
    """Registry with the built-in reconciliation tools."""
    registry = ToolRegistry(ledger, fetcher)
    registry.register(ToolDefinition(
        name="analyze_statement",
        description="Match inline bank transactions against inline ledger transactions",
        strategy=HandlerStrategy.NO_DEPENDENCIES,
        input_model=AnalyzeRequest,
        handler=analyze_statement,
    ))
    registry.register(ToolDefinition(
        name="get_account_balance",
        description="Current, cleared and uncleared balance of a ledger account",
        strategy=HandlerStrategy.LEDGER,
        input_model=AccountRequest,
        handler=get_account_balance,
    ))
    registry.register(ToolDefinition(
        name="reconcile_account",
        description="Analyze a bank statement against the ledger and optionally apply corrections",
        strategy=HandlerStrategy.LEDGER_AND_FETCHER,
        input_model=ReconcileRequest,
        handler=reconcile_account,
    ))
    return registry
