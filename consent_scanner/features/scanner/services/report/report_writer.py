from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import async_sessionmaker

from consent_scanner.features.scanner.models.scan_report import (
    IssueCategory,
    ReportIssue,
    ReportRiskLevel,
    ScanReport,
)
from consent_scanner.features.scanner.schemas.scan_result import RiskLevel, ScanResult
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)

ISSUE_CATEGORY_MAP = {
    "COOKIES_BEFORE_CONSENT": IssueCategory.cookies,
    "COOKIE_EXCESSIVE_EXPIRATION": IssueCategory.cookies,
    "COOKIES_WITHOUT_SECURE": IssueCategory.cookies,
    "COOKIES_WITHOUT_SAMESITE": IssueCategory.cookies,
    "TRACKERS_BEFORE_CONSENT": IssueCategory.trackers,
    "NO_CONSENT_BANNER": IssueCategory.consent,
    "NO_REJECT_OPTION": IssueCategory.consent,
    "PRE_CHECKED_BOXES": IssueCategory.consent,
    "UNEQUAL_BUTTON_PROMINENCE": IssueCategory.consent,
    "COOKIE_WALL": IssueCategory.consent,
    "NO_GRANULAR_CONSENT": IssueCategory.consent,
    "NO_PRIVACY_POLICY": IssueCategory.privacy_policy,
    "PRIVACY_POLICY_INCOMPLETE": IssueCategory.privacy_policy,
    "NO_DATA_RETENTION_INFO": IssueCategory.privacy_policy,
    "NO_COMPLAINT_RIGHT_INFO": IssueCategory.privacy_policy,
    "NO_HTTPS": IssueCategory.security,
    "MIXED_CONTENT": IssueCategory.security,
    "FORMS_WITHOUT_CONSENT": IssueCategory.forms,
    "FORMS_PRECHECKED_MARKETING": IssueCategory.forms,
    "FORMS_NO_PRIVACY_LINK": IssueCategory.forms,
    "US_DATA_TRANSFERS": IssueCategory.data_transfer,
    "EXCESSIVE_US_SERVICES": IssueCategory.data_transfer,
    "EXCESSIVE_THIRD_PARTY": IssueCategory.other,
}

RISK_LEVEL_MAP = {
    RiskLevel.CRITICAL: ReportRiskLevel.critical,
    RiskLevel.HIGH: ReportRiskLevel.high,
    RiskLevel.MEDIUM: ReportRiskLevel.medium,
    RiskLevel.LOW: ReportRiskLevel.low,
}


class ReportWriter(Protocol):
    async def save_scan_result(self, result: ScanResult, audit_request_id: Optional[str] = None) -> str: ...


class ScanReportService:
    """Persists a ScanResult as a scan_reports row plus one report_issues row per issue."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def save_scan_result(self, result: ScanResult, audit_request_id: Optional[str] = None) -> str:
        report = ScanReport(
            audit_request_id=audit_request_id,
            website_url=result.website_url,
            # naive UTC, like every other timestamp column we own
            scanned_at=result.scan_date.replace(tzinfo=None),
            scan_duration_ms=result.scan_duration_ms,
            overall_score=result.score,
            risk_level=RISK_LEVEL_MAP[result.overall_risk_level],
            cookies=result.cookies.model_dump(mode="json"),
            trackers=result.trackers.model_dump(mode="json"),
            third_party_requests=result.third_party_requests.model_dump(mode="json"),
            consent_banner=result.consent_banner.model_dump(mode="json"),
            privacy_policy=result.privacy_policy.model_dump(mode="json"),
            security=result.security.model_dump(mode="json"),
            forms=result.forms.model_dump(mode="json"),
            data_transfers=result.data_transfers.model_dump(mode="json"),
            technologies=result.technologies.model_dump(mode="json"),
            issues=[
                ReportIssue(
                    code=issue.code,
                    category=ISSUE_CATEGORY_MAP.get(issue.code, IssueCategory.other),
                    risk_level=RISK_LEVEL_MAP[issue.risk_level],
                    title=issue.title,
                    description=issue.description,
                    recommendation=issue.recommendation,
                )
                for issue in result.issues
            ],
        )

        async with self.session_factory() as session:
            session.add(report)
            await session.commit()
            report_id = report.id

        logger.info(
            f"Saved report {report_id} for {result.website_url} "
            f"(score {result.score}, {len(result.issues)} issues)"
        )
        return report_id
