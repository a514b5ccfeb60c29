"""
Issue rules.

A pure pass over the collected evidence: each analyzer contributes its own
rules through its generate_issues(); the only cross-cutting rule lives here.
"""
from typing import List

from consent_scanner.features.scanner.schemas.scan_result import (
    ConsentBannerInfo,
    CookieInfo,
    DataTransferInfo,
    FormsAnalysisResult,
    Issue,
    PrivacyPolicyInfo,
    RiskLevel,
    SecurityInfo,
    ThirdPartyRequest,
    TrackerInfo,
)
from consent_scanner.features.scanner.services.analyzers.consent import ConsentAnalyzer
from consent_scanner.features.scanner.services.analyzers.cookie import CookieAnalyzer
from consent_scanner.features.scanner.services.analyzers.data_transfer import DataTransferAnalyzer
from consent_scanner.features.scanner.services.analyzers.form import FormAnalyzer
from consent_scanner.features.scanner.services.analyzers.privacy_policy import PrivacyPolicyAnalyzer
from consent_scanner.features.scanner.services.analyzers.security import SecurityAnalyzer
from consent_scanner.features.scanner.services.analyzers.tracker import TrackerAnalyzer

EXCESSIVE_THIRD_PARTY_BEFORE_CONSENT = 10


def third_party_issues(requests: List[ThirdPartyRequest]) -> List[Issue]:
    early = sum(1 for r in requests if r.before_consent)
    if early <= EXCESSIVE_THIRD_PARTY_BEFORE_CONSENT:
        return []
    return [
        Issue(
            code="EXCESSIVE_THIRD_PARTY",
            title="Excessive third-party requests before consent",
            description=f"{early} third-party requests were made before user consent.",
            risk_level=RiskLevel.MEDIUM,
            recommendation="Review and minimize third-party requests that occur before user consent.",
        )
    ]


def generate_issues(
    cookies: List[CookieInfo],
    trackers: List[TrackerInfo],
    third_party_requests: List[ThirdPartyRequest],
    consent_banner: ConsentBannerInfo,
    privacy_policy: PrivacyPolicyInfo,
    security: SecurityInfo,
    forms: FormsAnalysisResult,
    data_transfers: DataTransferInfo,
) -> List[Issue]:
    return [
        *CookieAnalyzer.generate_issues(cookies),
        *TrackerAnalyzer.generate_issues(trackers),
        *ConsentAnalyzer.generate_issues(consent_banner),
        *PrivacyPolicyAnalyzer.generate_issues(privacy_policy),
        *third_party_issues(third_party_requests),
        *SecurityAnalyzer.generate_issues(security),
        *FormAnalyzer.generate_issues(forms),
        *DataTransferAnalyzer.generate_issues(data_transfers),
    ]
