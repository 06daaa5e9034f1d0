"""
Bank statement CSV parser.

Detects the date / amount / debit / credit / payee / memo columns from the
header row and produces BankTransaction objects with exact Decimal amounts.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Dict

import structlog

from ..models import BankTransaction

logger = structlog.get_logger()


class BankStatementParseError(ValueError):
    """Raised when a statement row cannot be parsed."""
    def __init__(self, message: str, row: Optional[int] = None):
        super().__init__(f"Row {row}: {message}" if row is not None else message)
        self.row = row


@dataclass
class ColumnMapping:
    """Detected column mapping for a bank statement CSV."""
    date_col: int
    payee_col: Optional[int]
    amount_col: Optional[int] = None
    debit_col: Optional[int] = None
    credit_col: Optional[int] = None
    memo_col: Optional[int] = None


@dataclass
class CSVParseResult:
    """Result of parsing a bank statement CSV."""
    transactions: List[BankTransaction]
    column_mapping: ColumnMapping
    date_format: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def date_range(self) -> Optional[tuple]:
        if not self.transactions:
            return None
        dates = [t.date for t in self.transactions]
        return min(dates), max(dates)


class BankStatementCSVParser:
    """
    Parser for bank statement CSV exports.

    Single signed amount columns and split debit/credit columns are both
    supported. Debits become negative amounts.
    """

    HEADER_ALIASES: Dict[str, List[str]] = {
        "date": ["date", "transaction date", "posted date", "posting date", "fecha"],
        "amount": ["amount", "transaction amount", "monto", "importe"],
        "debit": ["debit", "debits", "withdrawal", "withdrawals", "outflow", "cargo"],
        "credit": ["credit", "credits", "deposit", "deposits", "inflow", "abono"],
        "payee": ["payee", "description", "merchant", "name", "details", "concepto"],
        "memo": ["memo", "notes", "note", "reference", "referencia"],
    }

    # Order matters: ambiguous day/month values resolve to the first format
    DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%m/%d/%y"]

    AMOUNT_CLEANUP = re.compile(r"[^\d.\-]")

    def __init__(self, date_format: Optional[str] = None, delimiter: Optional[str] = None):
        self.date_format = date_format
        self.delimiter = delimiter

    def parse(self, content: str) -> CSVParseResult:
        """
        Parse CSV text.

        Args:
            content: CSV text including a header row

        Returns:
            CSVParseResult with one BankTransaction per non-blank row

        Raises:
            BankStatementParseError: on missing columns or unparseable rows
        """
        rows = self._read_rows(content)
        if not rows:
            raise BankStatementParseError("Statement is empty")

        mapping = self._detect_columns(rows[0])
        date_format = self.date_format or self._detect_date_format(rows[1:], mapping.date_col)

        transactions = []
        warnings = []
        for row_number, row in enumerate(rows[1:], start=2):
            if not any(cell.strip() for cell in row):
                continue
            transactions.append(self._parse_row(row, row_number, mapping, date_format))

        if not transactions:
            warnings.append("No transactions found in statement")

        logger.info(
            "Parsed bank statement CSV",
            transactions=len(transactions),
            date_format=date_format,
        )

        return CSVParseResult(
            transactions=transactions,
            column_mapping=mapping,
            date_format=date_format,
            warnings=warnings,
        )

    def _read_rows(self, content: str) -> List[List[str]]:
        text = content.lstrip("\ufeff")
        delimiter = self.delimiter
        if delimiter is None:
            header_line = text.split("\n", 1)[0]
            delimiter = max(",;\t|", key=header_line.count)
        return [row for row in csv.reader(io.StringIO(text), delimiter=delimiter)]

    def _detect_columns(self, header: List[str]) -> ColumnMapping:
        normalized = [cell.strip().lower() for cell in header]

        def find(kind: str) -> Optional[int]:
            for alias in self.HEADER_ALIASES[kind]:
                if alias in normalized:
                    return normalized.index(alias)
            return None

        date_col = find("date")
        if date_col is None:
            raise BankStatementParseError(f"No date column in header: {header}", row=1)

        amount_col = find("amount")
        debit_col = find("debit")
        credit_col = find("credit")
        if amount_col is None and debit_col is None and credit_col is None:
            raise BankStatementParseError(f"No amount column in header: {header}", row=1)

        return ColumnMapping(
            date_col=date_col,
            payee_col=find("payee"),
            amount_col=amount_col,
            debit_col=debit_col,
            credit_col=credit_col,
            memo_col=find("memo"),
        )

    def _detect_date_format(self, rows: List[List[str]], date_col: int) -> Optional[str]:
        """First format that parses every date in the column."""
        values = [
            row[date_col].strip() for row in rows
            if len(row) > date_col and row[date_col].strip()
        ]
        for fmt in self.DATE_FORMATS:
            try:
                for value in values:
                    datetime.strptime(value, fmt)
            except ValueError:
                continue
            return fmt
        return None

    def _parse_row(
        self,
        row: List[str],
        row_number: int,
        mapping: ColumnMapping,
        date_format: Optional[str],
    ) -> BankTransaction:
        txn_date = self.parse_date(self._cell(row, mapping.date_col), row_number, date_format)

        if mapping.amount_col is not None and self._cell(row, mapping.amount_col):
            amount = self.parse_amount(self._cell(row, mapping.amount_col), row_number)
        else:
            debit = self._cell(row, mapping.debit_col)
            credit = self._cell(row, mapping.credit_col)
            if not debit and not credit:
                raise BankStatementParseError("Row has no amount", row=row_number)
            amount = Decimal("0")
            if credit:
                amount += abs(self.parse_amount(credit, row_number))
            if debit:
                amount -= abs(self.parse_amount(debit, row_number))

        memo = self._cell(row, mapping.memo_col) or None
        return BankTransaction(
            date=txn_date,
            amount=amount,
            payee=self._cell(row, mapping.payee_col),
            memo=memo,
            original_row=row_number,
        )

    @staticmethod
    def _cell(row: List[str], index: Optional[int]) -> str:
        if index is None or index >= len(row):
            return ""
        return row[index].strip()

    def parse_date(self, value: str, row_number: int, date_format: Optional[str] = None) -> date:
        formats = [date_format] if date_format else self.DATE_FORMATS
        for fmt in formats:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
        raise BankStatementParseError(f"Unparseable date {value!r}", row=row_number)

    def parse_amount(self, value: str, row_number: int) -> Decimal:
        """Parse '$1,234.56', '(12.00)' or '-5' into a Decimal."""
        text = value.strip()
        negative = text.startswith("(") and text.endswith(")")
        cleaned = self.AMOUNT_CLEANUP.sub("", text)
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            raise BankStatementParseError(f"Unparseable amount {value!r}", row=row_number)
        if not amount.is_finite():
            raise BankStatementParseError(f"Unparseable amount {value!r}", row=row_number)
        return -abs(amount) if negative else amount
