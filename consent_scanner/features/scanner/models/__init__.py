"""
Scanner models package.
"""
from consent_scanner.features.scanner.models.scan_job import ScanJob, ScanJobStatus
from consent_scanner.features.scanner.models.scan_report import ScanReport, ReportIssue

__all__ = ["ScanJob", "ScanJobStatus", "ScanReport", "ReportIssue"]
