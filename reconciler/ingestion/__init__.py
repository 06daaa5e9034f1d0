"""Ingestion module for bank statement exports."""

from .csv_parser import BankStatementCSVParser, BankStatementParseError, CSVParseResult

__all__ = ["BankStatementCSVParser", "BankStatementParseError", "CSVParseResult"]
