"""Report generators."""

from .console import ConsoleReporter
from .json_report import JSONReporter
from .sarif_report import SARIFReporter

__all__ = ["ConsoleReporter", "JSONReporter", "SARIFReporter"]
