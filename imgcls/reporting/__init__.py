"""Reporting backends."""

from imgcls.reporting.console import ConsoleReporter
from imgcls.reporting.csv_reporter import CsvReporter

__all__ = ["ConsoleReporter", "CsvReporter"]
