"""
Ledger API client (YNAB-compatible REST API).
"""

from datetime import date
from typing import List, Optional, Dict, Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import get_settings
from ..models import AccountSnapshot, LedgerTransaction, TransactionDraft, TransactionUpdate
from .errors import LedgerAPIError
from .ledger import MAX_BULK_CREATE_CHUNK, SaveTransactionsResponse

logger = structlog.get_logger()


def _is_transport_failure(error: BaseException) -> bool:
    """Only network-level failures (no HTTP status) are worth retrying."""
    return isinstance(error, LedgerAPIError) and error.status_code == 0


class LedgerClient:
    """
    Client for the ledger REST API.
    Reads are retried on transport failures; writes are sent exactly once.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = get_settings()
        self.base_url = base_url or self.settings.ledger_api_url
        self.access_token = access_token or self.settings.ledger_access_token or ""
        self.timeout = self.settings.ledger_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> Dict[str, Any]:
        """Make an authenticated request and return the `data` payload."""
        client = await self._get_client()

        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException:
            raise LedgerAPIError("Request timeout")
        except httpx.RequestError as e:
            raise LedgerAPIError(f"Request error: {str(e)}")

        if response.status_code == 401:
            raise LedgerAPIError(
                "Authentication failed. Check the access token.",
                status_code=401,
            )

        if response.status_code >= 400:
            try:
                error_detail: Any = response.json()
            except ValueError:
                error_detail = response.text
            raise LedgerAPIError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        if response.status_code == 204:
            return {}

        return response.json().get("data", {})

    @retry(
        retry=retry_if_exception(_is_transport_failure),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _read(self, endpoint: str, **kwargs) -> Dict[str, Any]:
        return await self._request("GET", endpoint, **kwargs)

    async def get_account(self, budget_id: str, account_id: str) -> AccountSnapshot:
        """Current balances of an account."""
        data = await self._read(f"/budgets/{budget_id}/accounts/{account_id}")
        return AccountSnapshot.from_api(data.get("account", {}))

    async def get_account_details(self, budget_id: str, account_id: str) -> Dict[str, Any]:
        """Raw account payload (type, name, balances)."""
        data = await self._read(f"/budgets/{budget_id}/accounts/{account_id}")
        return data.get("account", {})

    async def get_currency(self, budget_id: str) -> Optional[str]:
        """ISO currency code of the budget, if the API reports one."""
        data = await self._read(f"/budgets/{budget_id}/settings")
        currency_format = data.get("settings", {}).get("currency_format") or {}
        return currency_format.get("iso_code")

    async def list_transactions(
        self,
        budget_id: str,
        account_id: str,
        since_date: Optional[date] = None,
    ) -> List[LedgerTransaction]:
        """
        List transactions of an account.

        Args:
            budget_id: Budget identifier
            account_id: Account identifier
            since_date: Only transactions on or after this date

        Returns:
            Non-deleted ledger transactions
        """
        params = {}
        if since_date:
            params["since_date"] = since_date.isoformat()

        data = await self._read(
            f"/budgets/{budget_id}/accounts/{account_id}/transactions",
            params=params,
        )
        transactions = [
            LedgerTransaction.from_api(txn)
            for txn in data.get("transactions", [])
            if not txn.get("deleted", False)
        ]
        logger.info(
            "Fetched ledger transactions",
            account_id=account_id,
            count=len(transactions),
        )
        return transactions

    async def create_transaction(
        self,
        budget_id: str,
        draft: TransactionDraft,
    ) -> SaveTransactionsResponse:
        data = await self._request(
            "POST",
            f"/budgets/{budget_id}/transactions",
            json={"transaction": draft.to_payload()},
        )
        return self._save_response(data)

    async def create_transactions(
        self,
        budget_id: str,
        drafts: List[TransactionDraft],
    ) -> SaveTransactionsResponse:
        if len(drafts) > MAX_BULK_CREATE_CHUNK:
            raise ValueError(
                f"Bulk create accepts at most {MAX_BULK_CREATE_CHUNK} transactions, got {len(drafts)}"
            )
        data = await self._request(
            "POST",
            f"/budgets/{budget_id}/transactions",
            json={"transactions": [d.to_payload() for d in drafts]},
        )
        return self._save_response(data)

    async def update_transactions(
        self,
        budget_id: str,
        updates: List[TransactionUpdate],
    ) -> List[LedgerTransaction]:
        data = await self._request(
            "PATCH",
            f"/budgets/{budget_id}/transactions",
            json={"transactions": [u.to_payload() for u in updates]},
        )
        return [LedgerTransaction.from_api(txn) for txn in data.get("transactions", [])]

    @staticmethod
    def _save_response(data: Dict[str, Any]) -> SaveTransactionsResponse:
        payloads = list(data.get("transactions") or [])
        if data.get("transaction"):
            payloads.append(data["transaction"])
        return SaveTransactionsResponse(
            transactions=[LedgerTransaction.from_api(txn) for txn in payloads],
            duplicate_import_ids=list(data.get("duplicate_import_ids") or []),
        )
