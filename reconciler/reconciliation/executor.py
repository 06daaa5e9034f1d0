"""
Reconciliation Executor - applies (or simulates) corrective ledger writes.

One newest-to-oldest pass with a running cleared delta
(initial cleared balance - statement balance). After every state-changing
step the delta is checked against the tolerance; once inside it, a balance
checkpoint is recorded and the remaining write phases are skipped.

Phases:
1. Create transactions missing from the ledger (bulk with sequential fallback)
2. Clear / re-date auto-matched ledger transactions
3. Un-clear ledger transactions absent from the statement
4. As-of-date balance reconciliation report
5. Snapshot refresh and recommendations
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Iterator

import structlog

from ..integrations.errors import LedgerError, normalize_ledger_error
from ..integrations.ledger import LedgerAccess, MAX_BULK_CREATE_CHUNK, SaveTransactionsResponse
from ..models import (
    AccountSnapshot,
    AlignmentState,
    BalanceReconciliation,
    BalanceStatus,
    BankTransaction,
    BulkOperationDetails,
    ClearedStatus,
    ExecutionActionRecord,
    ExecutionActionType,
    ExecutionParams,
    ExecutionResult,
    ExecutionSummary,
    LedgerTransaction,
    LikelyCause,
    ReconciliationAnalysis,
    TransactionDraft,
    TransactionMatch,
    TransactionUpdate,
)
from ..utils.money import MoneyValue, add_milli, format_money, to_milli
from .correlation import build_import_id, correlate_results, generate_correlation_key

logger = structlog.get_logger()

# Balance changes at or below this are not worth reporting
MONEY_EPSILON_MILLI = 100
DEFAULT_MEMO = "Auto-reconciled from bank statement"


@dataclass
class PreparedDraft:
    """A draft ready for submission, tied back to its bank transaction."""
    bank_transaction: BankTransaction
    draft: TransactionDraft
    amount_milli: int
    correlation_key: str

    @property
    def label(self) -> str:
        return self.bank_transaction.payee or "Unknown"


@dataclass
class ExecutionRun:
    """Mutable state of a single execution."""
    params: ExecutionParams
    currency: str
    summary: ExecutionSummary
    cleared_delta: int
    tolerance: int
    actions: List[ExecutionActionRecord] = field(default_factory=list)
    state: AlignmentState = AlignmentState.NOT_ALIGNED
    bulk_details: Optional[BulkOperationDetails] = None
    snapshot_dirty: bool = False

    @property
    def aligned(self) -> bool:
        return self.state == AlignmentState.ALIGNED

    def apply_delta(self, delta: int) -> None:
        if delta:
            self.cleared_delta = add_milli(self.cleared_delta, delta)

    def check_alignment(self, trigger: str, record: bool = True) -> bool:
        """Transition to ALIGNED once the delta is within tolerance."""
        if self.aligned:
            return True
        if abs(self.cleared_delta) > self.tolerance:
            return False

        self.state = AlignmentState.ALIGNED
        if record:
            self.actions.append(ExecutionActionRecord(
                type=ExecutionActionType.BALANCE_CHECKPOINT,
                reason=(
                    f"Cleared delta {format_money(self.cleared_delta, self.currency)} within "
                    f"±{format_money(self.tolerance, self.currency)} after {trigger} - "
                    f"halting newest-to-oldest pass"
                ),
            ))
        logger.info(
            "Balance checkpoint reached",
            trigger=trigger,
            cleared_delta=self.cleared_delta,
            tolerance=self.tolerance,
        )
        return True


def _chunks(items: List[PreparedDraft], size: int) -> Iterator[List[PreparedDraft]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def likely_causes(discrepancy: int, currency: str = "USD") -> List[LikelyCause]:
    """Heuristic explanations for an as-of-date discrepancy."""
    causes: List[LikelyCause] = []
    magnitude = abs(discrepancy)
    if magnitude and (magnitude % 1000 == 0 or magnitude % 500 == 0):
        causes.append(LikelyCause(
            cause_type="bank_fee",
            description="Round amount suggests a bank fee or interest adjustment.",
            confidence=0.8,
            amount=MoneyValue.signed(discrepancy, currency),
            suggested_resolution=(
                "Create bank fee transaction and mark cleared" if discrepancy < 0
                else "Record interest income"
            ),
            risk="LOW",
        ))
    return causes


class ReconciliationExecutor:
    """
    Executes an analysis against the ledger.

    Dry runs follow the same branching but never call write operations.
    Fatal ledger errors propagate as LedgerAPIError with the original status
    code; every other failure is recorded in actions_taken and counters.
    """

    def __init__(self, ledger: LedgerAccess):
        self.ledger = ledger

    async def execute(
        self,
        analysis: ReconciliationAnalysis,
        params: ExecutionParams,
        initial_snapshot: AccountSnapshot,
        currency: str = "USD",
    ) -> ExecutionResult:
        """
        Run the write phases for one account.

        Args:
            analysis: Result of the analyzer for the same statement
            params: Execution flags
            initial_snapshot: Account balances before any write
            currency: Currency code for action descriptions

        Returns:
            ExecutionResult describing what was (or would be) done
        """
        logger.info(
            "Starting execution",
            account_id=params.account_id,
            dry_run=params.dry_run,
            unmatched_bank=len(analysis.unmatched_bank),
            auto_matches=len(analysis.auto_matches),
            unmatched_ledger=len(analysis.unmatched_ledger),
        )

        summary = ExecutionSummary(
            bank_transactions_count=analysis.summary.bank_transactions_count,
            ledger_transactions_count=analysis.summary.ledger_transactions_count,
            matches_found=len(analysis.auto_matches),
            missing_in_ledger=len(analysis.unmatched_bank),
            missing_in_bank=len(analysis.unmatched_ledger),
            dry_run=params.dry_run,
        )
        target = to_milli(params.statement_balance)
        run = ExecutionRun(
            params=params,
            currency=currency,
            summary=summary,
            cleared_delta=add_milli(initial_snapshot.cleared_balance, -target),
            tolerance=params.balance_tolerance_milli,
        )
        run.check_alignment("initial balance check", record=False)

        ordered_bank = sorted(analysis.unmatched_bank, key=lambda t: t.date, reverse=True)
        ordered_matches = sorted(
            analysis.auto_matches, key=lambda m: m.bank_transaction.date, reverse=True
        )
        ordered_ledger = sorted(analysis.unmatched_ledger, key=lambda t: t.date, reverse=True)

        if params.auto_create_transactions and not run.aligned:
            await self._create_missing(run, ordered_bank)

        if not run.aligned:
            await self._update_matched(run, ordered_matches)

        if params.auto_unclear_missing and not run.aligned:
            await self._unclear_missing(run, ordered_ledger)

        balance_reconciliation = None
        if params.statement_date is not None:
            balance_reconciliation = await self._balance_reconciliation(params, currency)

        after_snapshot = initial_snapshot
        if not params.dry_run and run.snapshot_dirty:
            after_snapshot = await self._refresh_snapshot(params, initial_snapshot)

        balance_change = 0
        if not params.dry_run and run.snapshot_dirty:
            balance_change = after_snapshot.balance - initial_snapshot.balance

        if run.bulk_details is not None:
            run.bulk_details.failed_transactions = run.bulk_details.transaction_failures

        logger.info(
            "Execution complete",
            created=summary.transactions_created,
            updated=summary.transactions_updated,
            dates_adjusted=summary.dates_adjusted,
            aligned=run.aligned,
            actions=len(run.actions),
        )

        return ExecutionResult(
            summary=summary,
            account_balance_before=initial_snapshot,
            account_balance_after=after_snapshot,
            actions_taken=run.actions,
            recommendations=self._recommendations(analysis, params, summary, balance_change, currency),
            balance_reconciliation=balance_reconciliation,
            bulk_operation_details=run.bulk_details,
        )

    # Phase 1: create missing transactions

    def _prepare(self, run: ExecutionRun, bank: BankTransaction) -> PreparedDraft:
        amount = bank.amount_milli
        account_id = run.params.account_id
        draft = TransactionDraft(
            account_id=account_id,
            date=bank.date,
            amount=amount,
            payee_name=bank.payee or None,
            memo=bank.memo or DEFAULT_MEMO,
            cleared=ClearedStatus.CLEARED,
            approved=True,
            import_id=build_import_id(account_id, bank.date, amount, bank.payee),
        )
        return PreparedDraft(
            bank_transaction=bank,
            draft=draft,
            amount_milli=amount,
            correlation_key=generate_correlation_key(draft),
        )

    async def _create_missing(self, run: ExecutionRun, ordered_bank: List[BankTransaction]) -> None:
        if run.params.dry_run:
            for bank in ordered_bank:
                if run.aligned:
                    break
                entry = self._prepare(run, bank)
                run.summary.transactions_created += 1
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.CREATE_TRANSACTION,
                    transaction=entry.draft.to_payload(),
                    reason=(
                        f"Would create missing transaction: {entry.label} "
                        f"({format_money(entry.amount_milli, run.currency)})"
                    ),
                    correlation_key=entry.correlation_key,
                ))
                run.apply_delta(entry.amount_milli)
                run.check_alignment(f"creating {entry.label}")
            return

        if len(ordered_bank) >= 2:
            await self._create_in_bulk(run, ordered_bank)
        else:
            await self._create_sequentially(run, [self._prepare(run, b) for b in ordered_bank])

    async def _create_in_bulk(self, run: ExecutionRun, ordered_bank: List[BankTransaction]) -> None:
        details = BulkOperationDetails()
        run.bulk_details = details

        position = 0
        while position < len(ordered_bank) and not run.aligned:
            # Only submit as many drafts as the balance needs
            batch: List[PreparedDraft] = []
            projected = run.cleared_delta
            while position < len(ordered_bank):
                entry = self._prepare(run, ordered_bank[position])
                batch.append(entry)
                position += 1
                projected = add_milli(projected, entry.amount_milli)
                if abs(projected) <= run.tolerance:
                    break

            for chunk in _chunks(batch, MAX_BULK_CREATE_CHUNK):
                if run.aligned:
                    break
                details.chunks_processed += 1
                chunk_index = details.chunks_processed

                try:
                    response = await self.ledger.create_transactions(
                        run.params.budget_id, [entry.draft for entry in chunk]
                    )
                except Exception as exc:
                    error = normalize_ledger_error(exc)
                    details.bulk_chunk_failures += 1
                    if error.fatal:
                        details.transaction_failures += len(chunk)
                        details.failed_transactions = details.transaction_failures
                        logger.error(
                            "Bulk chunk failed with fatal error",
                            chunk=chunk_index,
                            status=error.status,
                            error=error.message,
                        )
                        raise error.to_exception() from exc

                    details.sequential_fallbacks += 1
                    logger.warning(
                        "Bulk chunk failed, falling back to sequential creation",
                        chunk=chunk_index,
                        size=len(chunk),
                        error=error.describe(),
                    )
                    run.actions.append(ExecutionActionRecord(
                        type=ExecutionActionType.BULK_CREATE_FALLBACK,
                        reason=(
                            f"Bulk chunk #{chunk_index} failed ({error.message}) - "
                            f"falling back to sequential creation"
                        ),
                        bulk_chunk_index=chunk_index,
                    ))
                    await self._create_sequentially(run, chunk, chunk_index, fallback=error)
                    continue

                details.bulk_successes += 1
                self._record_bulk_results(run, chunk, chunk_index, response)

    def _record_bulk_results(
        self,
        run: ExecutionRun,
        chunk: List[PreparedDraft],
        chunk_index: int,
        response: SaveTransactionsResponse,
    ) -> None:
        details = run.bulk_details
        created_by_id: Dict[str, LedgerTransaction] = {t.id: t for t in response.transactions}

        for result in correlate_results([entry.draft for entry in chunk], response):
            entry = chunk[result.request_index]

            if result.status == "created":
                created = created_by_id.get(result.transaction_id or "")
                self._record_created(
                    run, entry, created,
                    prefix="Created missing transaction via bulk",
                    chunk_index=chunk_index,
                )
                run.apply_delta(entry.amount_milli)
                run.check_alignment(f"creating {entry.label} via bulk chunk {chunk_index}")
            elif result.status == "duplicate":
                details.duplicates_detected += 1
                self._record_duplicate(run, entry, chunk_index)
            else:
                details.transaction_failures += 1
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.CREATE_TRANSACTION_FAILED,
                    transaction=entry.draft.to_payload(),
                    reason=result.error or f"Bulk create failed for {entry.label}",
                    correlation_key=result.correlation_key,
                    bulk_chunk_index=chunk_index,
                ))

    async def _create_sequentially(
        self,
        run: ExecutionRun,
        entries: List[PreparedDraft],
        chunk_index: Optional[int] = None,
        fallback: Optional[LedgerError] = None,
    ) -> None:
        attempts = 0
        for entry in entries:
            if run.aligned:
                break
            if fallback is not None:
                attempts += 1

            try:
                response = await self.ledger.create_transaction(run.params.budget_id, entry.draft)
            except Exception as exc:
                error = normalize_ledger_error(exc)
                if run.bulk_details is not None:
                    run.bulk_details.transaction_failures += 1
                reason = (
                    f"Bulk fallback failed for {entry.label} ({error.message})"
                    if fallback is not None
                    else f"Failed to create transaction {entry.label} ({error.message})"
                )
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.CREATE_TRANSACTION_FAILED,
                    transaction=entry.draft.to_payload(),
                    reason=reason,
                    correlation_key=entry.correlation_key,
                    bulk_chunk_index=chunk_index,
                ))
                logger.warning(
                    "Transaction creation failed",
                    payee=entry.label,
                    status=error.status,
                    fatal=error.fatal,
                )
                if error.fatal:
                    if run.bulk_details is not None:
                        run.bulk_details.failed_transactions = run.bulk_details.transaction_failures
                    raise error.to_exception() from exc
                continue

            if entry.draft.import_id in response.duplicate_import_ids:
                if run.bulk_details is not None:
                    run.bulk_details.duplicates_detected += 1
                self._record_duplicate(run, entry, chunk_index)
                continue

            created = response.transactions[0] if response.transactions else None
            self._record_created(
                run, entry, created,
                prefix=(
                    "Created missing transaction after bulk fallback"
                    if fallback is not None else "Created missing transaction"
                ),
                chunk_index=chunk_index,
            )
            run.apply_delta(entry.amount_milli)
            trigger = f"creating {entry.label}"
            if chunk_index is not None:
                trigger += f" (chunk {chunk_index})"
            run.check_alignment(trigger)

        if run.bulk_details is not None and fallback is not None and attempts:
            run.bulk_details.sequential_attempts += attempts

    def _record_created(
        self,
        run: ExecutionRun,
        entry: PreparedDraft,
        created: Optional[LedgerTransaction],
        prefix: str,
        chunk_index: Optional[int] = None,
    ) -> None:
        run.summary.transactions_created += 1
        run.snapshot_dirty = True
        run.actions.append(ExecutionActionRecord(
            type=ExecutionActionType.CREATE_TRANSACTION,
            transaction=created.to_dict() if created else None,
            reason=f"{prefix}: {entry.label} ({format_money(entry.amount_milli, run.currency)})",
            correlation_key=entry.correlation_key,
            bulk_chunk_index=chunk_index,
        ))

    @staticmethod
    def _record_duplicate(
        run: ExecutionRun,
        entry: PreparedDraft,
        chunk_index: Optional[int],
    ) -> None:
        run.actions.append(ExecutionActionRecord(
            type=ExecutionActionType.CREATE_TRANSACTION_DUPLICATE,
            transaction={"transaction_id": None, "import_id": entry.draft.import_id},
            reason=f"Duplicate import detected for {entry.label} (import_id {entry.draft.import_id})",
            correlation_key=entry.correlation_key,
            bulk_chunk_index=chunk_index,
            duplicate=True,
        ))

    # Phase 2: clear / re-date matched transactions

    async def _update_matched(self, run: ExecutionRun, ordered_matches: List[TransactionMatch]) -> None:
        params = run.params
        updates: List[TransactionUpdate] = []
        reasons: Dict[str, str] = {}
        dates_adjusted = 0
        projected = run.cleared_delta
        trigger = ""

        for match in ordered_matches:
            if run.aligned:
                break
            ledger = match.ledger_transaction
            if ledger is None:
                continue

            bank = match.bank_transaction
            needs_cleared = params.auto_update_cleared_status and not ledger.is_cleared
            needs_date = params.auto_adjust_dates and ledger.date != bank.date
            if not needs_cleared and not needs_date:
                continue

            update = TransactionUpdate(
                id=ledger.id,
                cleared=ClearedStatus.CLEARED if needs_cleared else None,
                date=bank.date if needs_date else None,
            )
            reason = self._update_reason(bank, needs_cleared, needs_date)

            if params.dry_run:
                run.summary.transactions_updated += 1
                if needs_date:
                    run.summary.dates_adjusted += 1
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.UPDATE_TRANSACTION,
                    transaction=update.to_payload(),
                    reason=f"Would update transaction: {reason}",
                ))
                if needs_cleared:
                    run.apply_delta(ledger.amount)
                    if run.check_alignment(f"clearing {ledger.id} (dry run)"):
                        break
                continue

            updates.append(update)
            reasons[ledger.id] = reason
            if needs_date:
                dates_adjusted += 1
            if needs_cleared:
                projected = add_milli(projected, ledger.amount)
                if abs(projected) <= run.tolerance:
                    trigger = f"clearing {ledger.id}"
                    break

        if params.dry_run or not updates:
            return

        updated = await self._submit_updates(run, updates, reasons, "Updated transaction")
        if updated is None:
            return
        run.summary.dates_adjusted += dates_adjusted
        run.apply_delta(projected - run.cleared_delta)
        run.check_alignment(trigger or f"clearing {len(updates)} matched transaction(s)")

    # Phase 3: un-clear transactions missing from the statement

    async def _unclear_missing(self, run: ExecutionRun, ordered_ledger: List[LedgerTransaction]) -> None:
        params = run.params
        updates: List[TransactionUpdate] = []
        reasons: Dict[str, str] = {}
        projected = run.cleared_delta
        trigger = ""

        for ledger in ordered_ledger:
            if ledger.cleared != ClearedStatus.CLEARED:
                continue
            if run.aligned:
                break

            update = TransactionUpdate(id=ledger.id, cleared=ClearedStatus.UNCLEARED)

            if params.dry_run:
                run.summary.transactions_updated += 1
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.UPDATE_TRANSACTION,
                    transaction=update.to_payload(),
                    reason=f"Would mark transaction {ledger.id} as uncleared - not present on statement",
                ))
                run.apply_delta(-ledger.amount)
                if run.check_alignment(f"unclearing {ledger.id} (dry run)"):
                    break
                continue

            updates.append(update)
            reasons[ledger.id] = f"marked {ledger.id} as uncleared - not found on statement"
            projected = add_milli(projected, -ledger.amount)
            if abs(projected) <= run.tolerance:
                trigger = f"unclearing {ledger.id}"
                break

        if params.dry_run or not updates:
            return

        updated = await self._submit_updates(run, updates, reasons, "Updated transaction")
        if updated is None:
            return
        run.apply_delta(projected - run.cleared_delta)
        run.check_alignment(trigger or f"unclearing {len(updates)} transaction(s)")

    async def _submit_updates(
        self,
        run: ExecutionRun,
        updates: List[TransactionUpdate],
        reasons: Dict[str, str],
        prefix: str,
    ) -> Optional[List[LedgerTransaction]]:
        """Send one batch update. Returns None when a non-fatal error was recorded."""
        try:
            updated = await self.ledger.update_transactions(run.params.budget_id, updates)
        except Exception as exc:
            error = normalize_ledger_error(exc)
            logger.warning(
                "Batch update failed",
                count=len(updates),
                status=error.status,
                fatal=error.fatal,
            )
            if error.fatal:
                raise error.to_exception() from exc
            for update in updates:
                run.actions.append(ExecutionActionRecord(
                    type=ExecutionActionType.UPDATE_TRANSACTION_FAILED,
                    transaction=update.to_payload(),
                    reason=f"Failed to update transaction {update.id} ({error.message})",
                ))
            return None

        run.snapshot_dirty = True
        run.summary.transactions_updated += len(updated)
        for txn in updated:
            run.actions.append(ExecutionActionRecord(
                type=ExecutionActionType.UPDATE_TRANSACTION,
                transaction=txn.to_dict(),
                reason=f"{prefix}: {reasons.get(txn.id, 'cleared status changed')}",
            ))
        return updated

    @staticmethod
    def _update_reason(bank: BankTransaction, needs_cleared: bool, needs_date: bool) -> str:
        parts = []
        if needs_cleared:
            parts.append("marked as cleared")
        if needs_date:
            parts.append(f"date adjusted to {bank.date.isoformat()}")
        return ", ".join(parts)

    # Phase 4 and 5

    async def _balance_reconciliation(
        self,
        params: ExecutionParams,
        currency: str,
    ) -> Optional[BalanceReconciliation]:
        try:
            transactions = await self.ledger.list_transactions(params.budget_id, params.account_id)
        except Exception as exc:
            error = normalize_ledger_error(exc)
            if error.fatal:
                raise error.to_exception() from exc
            logger.warning("Balance reconciliation skipped", error=error.describe())
            return None

        ledger_milli = sum(
            t.amount for t in transactions
            if t.is_cleared and t.date <= params.statement_date
        )
        bank_milli = to_milli(params.statement_balance)
        discrepancy = bank_milli - ledger_milli
        matches = discrepancy == 0

        return BalanceReconciliation(
            status=BalanceStatus.PERFECTLY_RECONCILED if matches else BalanceStatus.DISCREPANCY_FOUND,
            statement_date=params.statement_date,
            bank_statement_balance=MoneyValue.from_milli(bank_milli, currency),
            ledger_calculated_balance=MoneyValue.from_milli(ledger_milli, currency),
            discrepancy=MoneyValue.signed(discrepancy, currency),
            likely_causes=likely_causes(discrepancy, currency),
            balance_matches=matches,
        )

    async def _refresh_snapshot(
        self,
        params: ExecutionParams,
        fallback: AccountSnapshot,
    ) -> AccountSnapshot:
        try:
            return await self.ledger.get_account(params.budget_id, params.account_id)
        except Exception as exc:
            error = normalize_ledger_error(exc)
            if error.fatal:
                raise error.to_exception() from exc
            logger.warning("Account snapshot refresh failed", error=error.describe())
            return fallback

    @staticmethod
    def _recommendations(
        analysis: ReconciliationAnalysis,
        params: ExecutionParams,
        summary: ExecutionSummary,
        balance_change: int,
        currency: str,
    ) -> List[str]:
        recommendations = []

        if summary.dates_adjusted:
            recommendations.append(
                f"Adjusted {summary.dates_adjusted} transaction date(s) to match bank statement dates"
            )
        if analysis.summary.unmatched_bank and not params.auto_create_transactions:
            recommendations.append(
                f"Consider enabling auto_create_transactions to automatically create "
                f"{analysis.summary.unmatched_bank} missing transaction(s)"
            )
        if not params.auto_adjust_dates and analysis.auto_matches:
            recommendations.append(
                "Consider enabling auto_adjust_dates to align ledger dates with bank statement dates"
            )
        if analysis.summary.unmatched_ledger:
            recommendations.append(
                f"{analysis.summary.unmatched_ledger} transaction(s) exist in the ledger but not "
                f"on the bank statement; review for duplicates or pending items"
            )
        if params.dry_run:
            recommendations.append("Dry run only: re-run with dry_run=false to apply these changes")
        if abs(balance_change) > MONEY_EPSILON_MILLI:
            recommendations.append(
                f"Account balance changed by {format_money(balance_change, currency)} during reconciliation"
            )

        return recommendations
