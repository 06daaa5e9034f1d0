"""
FastAPI application for the Statement Reconciler.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import structlog

from .config import get_settings
from .ingestion import BankStatementParseError
from .integrations import LedgerAPIError, LedgerClient
from .integrations.ledger import LedgerAccess
from .logging_config import setup_logging
from .schemas import AnalyzeRequest, ReconcileRequest
from .tools import (
    ToolDependencyError,
    ToolNotFoundError,
    analyze_statement,
    build_registry,
    reconcile_account,
)
from .reconciliation import TransactionFetcher

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting Statement Reconciler API", env=get_settings().app_env)
    yield
    logger.info("Shutting down Statement Reconciler API")


app = FastAPI(
    title="Statement Reconciler",
    description="Bank statement vs. ledger reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)


async def get_ledger() -> AsyncIterator[LedgerAccess]:
    """Ledger client for one request."""
    async with LedgerClient() as client:
        yield client


@app.exception_handler(LedgerAPIError)
async def ledger_error_handler(request: Request, exc: LedgerAPIError):
    status = exc.status_code if exc.status_code >= 400 else 502
    logger.warning("Ledger API error", path=request.url.path, status=exc.status_code, error=str(exc))
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "ledger_status": exc.status_code or None},
    )


@app.exception_handler(BankStatementParseError)
async def parse_error_handler(request: Request, exc: BankStatementParseError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "row": exc.row})


# API Endpoints
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/analyze")
async def analyze(request: AnalyzeRequest) -> Dict[str, Any]:
    """Analysis only, from inline bank and ledger transactions."""
    try:
        return await analyze_statement(request)
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.post("/api/reconcile")
async def reconcile(
    request: ReconcileRequest,
    ledger: LedgerAccess = Depends(get_ledger),
) -> Dict[str, Any]:
    """Analyze a statement against the ledger and optionally execute."""
    logger.info(
        "Reconciliation requested",
        account_id=request.account_id,
        execute=request.execute,
    )
    return await reconcile_account(ledger, TransactionFetcher(ledger), request)


@app.get("/api/tools")
async def list_tools():
    """Registered tools and their input schemas."""
    return {"tools": build_registry().list_tools()}


@app.post("/api/tools/{name}")
async def call_tool(
    name: str,
    payload: Dict[str, Any],
    ledger: LedgerAccess = Depends(get_ledger),
) -> Dict[str, Any]:
    """Dispatch a tool by name."""
    registry = build_registry(ledger)
    try:
        return await registry.dispatch(name, payload)
    except ToolNotFoundError as e:
        raise HTTPException(404, str(e))
    except ToolDependencyError as e:
        raise HTTPException(503, str(e))
    except ValidationError as e:
        raise HTTPException(422, e.errors(include_url=False, include_context=False))


def run():
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "reconciler.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    run()
