from a11y_audit.features.scan.models.scan_request import ScanRequest, ScanRequestStatus
from a11y_audit.features.scan.models.scan_report import ScanReport

__all__ = ["ScanRequest", "ScanRequestStatus", "ScanReport"]
