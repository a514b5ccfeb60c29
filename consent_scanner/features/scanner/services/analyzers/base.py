"""
Collaborator interfaces used by the scan pipeline.

Page-facing calls are coroutines; request hooks are plain callables because
Playwright invokes them from its event dispatch. Stateful analyzers (tracker,
mixed content, data transfer, technology) hold state for a single scan; the
pipeline builds a fresh ScanAnalyzers for every run and resets them anyway.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from consent_scanner.features.scanner.schemas.scan_result import (
    ConsentBannerInfo,
    CookieInfo,
    CookieSecurityInfo,
    DataTransferInfo,
    FormsAnalysisResult,
    HttpsInfo,
    MixedContentInfo,
    PrivacyPolicyContent,
    PrivacyPolicyInfo,
    TechnologyDetectionResult,
    TrackerInfo,
)

# playwright.async_api.Page / Request; kept loose so fakes work in tests
Page = Any
Request = Any


class CookieCollector(Protocol):
    async def collect(self, page: Page, before_consent: bool) -> List[CookieInfo]: ...


class TrackerDetector(Protocol):
    def analyze_request(self, request: Request, before_consent: bool) -> Optional[TrackerInfo]: ...
    def detected_trackers(self) -> List[TrackerInfo]: ...
    def reset(self) -> None: ...


class ConsentDetector(Protocol):
    async def detect(self, page: Page) -> ConsentBannerInfo: ...
    async def click_accept(self, page: Page) -> bool: ...


class PrivacyPolicyDetector(Protocol):
    async def detect(self, page: Page) -> PrivacyPolicyInfo: ...
    async def analyze_content(self, page: Page, url: str) -> PrivacyPolicyContent: ...


class SecurityChecker(Protocol):
    async def analyze_https(self, page: Page, original_url: str) -> HttpsInfo: ...
    def track_mixed_content(self, request: Request, page_is_https: bool) -> None: ...
    def mixed_content_info(self) -> MixedContentInfo: ...
    def analyze_cookie_security(self, cookies: List[CookieInfo]) -> CookieSecurityInfo: ...
    def reset(self) -> None: ...


class FormInspector(Protocol):
    async def analyze(self, page: Page) -> FormsAnalysisResult: ...


class DataTransferDetector(Protocol):
    def analyze_request(self, request: Request) -> None: ...
    def transfer_info(self) -> DataTransferInfo: ...
    def reset(self) -> None: ...


class TechnologyFingerprinter(Protocol):
    def track_request(self, request: Request) -> None: ...
    async def detect(self, page: Page) -> TechnologyDetectionResult: ...
    def reset(self) -> None: ...


def _default_cookies():
    from consent_scanner.features.scanner.services.analyzers.cookie import CookieAnalyzer
    return CookieAnalyzer()


def _default_trackers():
    from consent_scanner.features.scanner.services.analyzers.tracker import TrackerAnalyzer
    return TrackerAnalyzer()


def _default_consent():
    from consent_scanner.features.scanner.services.analyzers.consent import ConsentAnalyzer
    return ConsentAnalyzer()


def _default_privacy_policy():
    from consent_scanner.features.scanner.services.analyzers.privacy_policy import PrivacyPolicyAnalyzer
    return PrivacyPolicyAnalyzer()


def _default_security():
    from consent_scanner.features.scanner.services.analyzers.security import SecurityAnalyzer
    return SecurityAnalyzer()


def _default_forms():
    from consent_scanner.features.scanner.services.analyzers.form import FormAnalyzer
    return FormAnalyzer()


def _default_data_transfer():
    from consent_scanner.features.scanner.services.analyzers.data_transfer import DataTransferAnalyzer
    return DataTransferAnalyzer()


def _default_technology():
    from consent_scanner.features.scanner.services.analyzers.technology import TechnologyAnalyzer
    return TechnologyAnalyzer()


@dataclass
class ScanAnalyzers:
    """The collaborator set used by one pipeline run."""

    cookies: CookieCollector = field(default_factory=_default_cookies)
    trackers: TrackerDetector = field(default_factory=_default_trackers)
    consent: ConsentDetector = field(default_factory=_default_consent)
    privacy_policy: PrivacyPolicyDetector = field(default_factory=_default_privacy_policy)
    security: SecurityChecker = field(default_factory=_default_security)
    forms: FormInspector = field(default_factory=_default_forms)
    data_transfer: DataTransferDetector = field(default_factory=_default_data_transfer)
    technology: TechnologyFingerprinter = field(default_factory=_default_technology)

    def reset(self) -> None:
        self.trackers.reset()
        self.security.reset()
        self.data_transfer.reset()
        self.technology.reset()
