"""
Import ids and bulk-result correlation.

Drafts carry a deterministic import id so that re-running reconciliation is
idempotent against the ledger's duplicate detection. Bulk responses do not
preserve request order, so each created transaction is matched back to its
draft by correlation key.
"""

import hashlib
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Dict, Optional, Any

from ..integrations.ledger import SaveTransactionsResponse
from ..models import LedgerTransaction, TransactionDraft

IMPORT_ID_PREFIX = "RECON:bulk:"
HASH_PREFIX = "hash:"


def build_import_id(account_id: str, txn_date: date, amount_milli: int, payee: Optional[str]) -> str:
    """RECON:bulk:<first 24 hex chars of sha256(account|date|amount|payee)>."""
    normalized_payee = (payee or "").strip().lower()
    raw = f"{account_id}|{txn_date.isoformat()}|{amount_milli}|{normalized_payee}"
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:24]
    return f"{IMPORT_ID_PREFIX}{digest}"


def _correlation_fields(item: Any) -> Dict[str, Any]:
    if isinstance(item, TransactionDraft):
        return item.to_payload()
    if isinstance(item, LedgerTransaction):
        data = item.to_dict()
        data["cleared"] = item.cleared.value
        return data
    return dict(item)


def generate_correlation_key(item: Any) -> str:
    """The import id when present, otherwise a hash of the identifying fields."""
    fields = _correlation_fields(item)
    if fields.get("import_id"):
        return fields["import_id"]

    approved = fields.get("approved", False)
    segments = [
        f"account:{fields.get('account_id') or ''}",
        f"date:{fields.get('date') or ''}",
        f"amount:{fields.get('amount') or 0}",
        f"payee:{fields.get('payee_id') or fields.get('payee_name') or ''}",
        f"category:{fields.get('category_id') or ''}",
        f"memo:{fields.get('memo') or ''}",
        f"cleared:{fields.get('cleared') or ''}",
        f"approved:{'true' if approved else 'false'}",
        f"flag:{fields.get('flag_color') or ''}",
    ]
    digest = hashlib.sha256("|".join(segments).encode("utf-8")).hexdigest()[:16]
    return f"{HASH_PREFIX}{digest}"


@dataclass
class CorrelatedResult:
    """Outcome of one draft within a bulk create."""
    request_index: int
    status: str  # created, duplicate or failed
    correlation_key: str
    transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


def correlate_results(
    drafts: List[TransactionDraft],
    response: SaveTransactionsResponse,
) -> List[CorrelatedResult]:
    """
    Match each draft to the transaction the ledger created for it.

    Drafts whose import id was reported as a duplicate are marked duplicate;
    drafts with no matching created transaction are marked failed.
    """
    by_import_id: Dict[str, List[str]] = defaultdict(list)
    by_hash: Dict[str, List[str]] = defaultdict(list)

    for txn in response.transactions:
        if not txn.id:
            continue
        key = generate_correlation_key(txn)
        if key.startswith(HASH_PREFIX):
            by_hash[key].append(txn.id)
        else:
            by_import_id[key].append(txn.id)

    def pop_id(index: Dict[str, List[str]], key: str) -> Optional[str]:
        bucket = index.get(key)
        if not bucket:
            return None
        return bucket.pop(0)

    duplicates = set(response.duplicate_import_ids)
    results: List[CorrelatedResult] = []

    for position, draft in enumerate(drafts):
        key = generate_correlation_key(draft)

        if draft.import_id and draft.import_id in duplicates:
            results.append(CorrelatedResult(
                request_index=position,
                status="duplicate",
                correlation_key=key,
            ))
            continue

        if key.startswith(HASH_PREFIX):
            transaction_id = pop_id(by_hash, key)
        else:
            transaction_id = pop_id(by_import_id, key)
            if transaction_id is None:
                hash_key = generate_correlation_key(replace(draft, import_id=None))
                transaction_id = pop_id(by_hash, hash_key)

        if transaction_id is not None:
            results.append(CorrelatedResult(
                request_index=position,
                status="created",
                correlation_key=key,
                transaction_id=transaction_id,
            ))
        else:
            results.append(CorrelatedResult(
                request_index=position,
                status="failed",
                correlation_key=key,
                error_code="correlation_failed",
                error="Unable to correlate request transaction with ledger response",
            ))

    return results
